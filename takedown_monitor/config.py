"""Configuration management for takedown-monitor.

Loads settings from environment variables and .env file.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file from project root
PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

if ENV_FILE.exists():
    load_dotenv(ENV_FILE)


def _parse_keywords(raw: str) -> list[str]:
    """Split comma-separated keywords; an empty entry means "title only"."""
    keywords = [k.strip() for k in raw.split(",")]
    return keywords or [""]


class Config:
    """Application configuration."""

    # Data paths
    DATA_DIR = PROJECT_ROOT / "data"

    # Database (Postgres in production, SQLite file locally)
    DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'takedown_monitor.db'}")

    # Search oracle (Serper.dev compatible)
    SERPER_API_KEY: Optional[str] = os.getenv("SERPER_API_KEY")
    SERPER_API_URL: str = os.getenv("SERPER_API_URL", "https://google.serper.dev/search")
    SEARCH_RATE_LIMIT: float = float(os.getenv("SEARCH_RATE_LIMIT", "1.0"))
    SEARCH_MAX_PAGES: int = int(os.getenv("SEARCH_MAX_PAGES", "3"))
    SEARCH_RESULTS_PER_PAGE: int = int(os.getenv("SEARCH_RESULTS_PER_PAGE", "10"))
    SEARCH_MAX_RESULTS: int = int(os.getenv("SEARCH_MAX_RESULTS", "30"))
    SEARCH_DELAY_MIN: float = float(os.getenv("SEARCH_DELAY_MIN", "1.0"))
    SEARCH_DELAY_MAX: float = float(os.getenv("SEARCH_DELAY_MAX", "3.0"))
    SEARCH_KEYWORDS: list[str] = _parse_keywords(os.getenv("SEARCH_KEYWORDS", ",manga,raw"))
    DEEP_MIN_URLS: int = int(os.getenv("DEEP_MIN_URLS", "5"))

    # Judgment oracle (OpenAI-compatible chat completions)
    LLM_API_KEY: Optional[str] = os.getenv("LLM_API_KEY")
    LLM_BASE_URL: Optional[str] = os.getenv("LLM_BASE_URL") or None
    LLM_MODEL_NAME: str = os.getenv("LLM_MODEL_NAME", "gpt-4o-mini")
    LLM_TIMEOUT: float = float(os.getenv("LLM_TIMEOUT", "120"))
    JUDGMENT_BATCH_SIZE: int = int(os.getenv("JUDGMENT_BATCH_SIZE", "20"))
    JUDGMENT_DELAY_MIN: float = float(os.getenv("JUDGMENT_DELAY_MIN", "10"))
    JUDGMENT_DELAY_MAX: float = float(os.getenv("JUDGMENT_DELAY_MAX", "10"))
    JUDGMENT_CRITERIA_FILE: Path = Path(
        os.getenv("JUDGMENT_CRITERIA_FILE", str(DATA_DIR / "criteria.txt"))
    )

    # Timeouts (seconds)
    HTTP_TIMEOUT: int = int(os.getenv("HTTP_TIMEOUT", "15"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def load_criteria(cls) -> str:
        """Read the optional judgment criteria text (comment lines skipped)."""
        if not cls.JUDGMENT_CRITERIA_FILE.exists():
            return ""

        lines = []
        with open(cls.JUDGMENT_CRITERIA_FILE, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    lines.append(line)
        return "\n".join(lines)

    @classmethod
    def missing_credentials(cls, search: bool = True, judgment: bool = True) -> list[str]:
        """
        Names of credentials required for a full monitoring run.

        Args:
            search: Check the search API key
            judgment: Check the LLM API key

        Returns:
            Environment variable names that are not set
        """
        missing = []
        if search and not cls.SERPER_API_KEY:
            missing.append("SERPER_API_KEY")
        if judgment and not cls.LLM_API_KEY:
            missing.append("LLM_API_KEY")
        return missing

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate configuration.

        Returns:
            List of warnings/errors
        """
        warnings = []

        if not cls.SERPER_API_KEY:
            warnings.append("SERPER_API_KEY not set - monitoring runs cannot search.")

        if not cls.LLM_API_KEY:
            warnings.append("LLM_API_KEY not set - unknown domains cannot be judged.")

        if cls.JUDGMENT_BATCH_SIZE < 1:
            warnings.append(f"JUDGMENT_BATCH_SIZE must be positive (got {cls.JUDGMENT_BATCH_SIZE})")

        if cls.JUDGMENT_DELAY_MIN > cls.JUDGMENT_DELAY_MAX:
            warnings.append("JUDGMENT_DELAY_MIN is greater than JUDGMENT_DELAY_MAX")

        if cls.SEARCH_DELAY_MIN > cls.SEARCH_DELAY_MAX:
            warnings.append("SEARCH_DELAY_MIN is greater than SEARCH_DELAY_MAX")

        return warnings

    @classmethod
    def print_status(cls):
        """Print configuration status."""
        from rich.console import Console
        from rich.table import Table

        console = Console()

        table = Table(title="Takedown Monitor Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="yellow")
        table.add_column("Status", style="green")

        for label, secret in (("Serper API Key", cls.SERPER_API_KEY), ("LLM API Key", cls.LLM_API_KEY)):
            if secret:
                preview = secret[:6] + "..." if len(secret) > 6 else "***"
                table.add_row(label, preview, "✓ Set")
            else:
                table.add_row(label, "Not set", "✗ Missing")

        database = cls.DATABASE_URL.split("@")[-1]
        table.add_row("Database", database, "✓")
        table.add_row("LLM Model", cls.LLM_MODEL_NAME, "✓")
        table.add_row("Judgment Batch Size", str(cls.JUDGMENT_BATCH_SIZE), "✓")
        table.add_row(
            "Judgment Delay",
            f"{cls.JUDGMENT_DELAY_MIN:g}-{cls.JUDGMENT_DELAY_MAX:g}s",
            "✓",
        )
        table.add_row("Search Rate Limit", f"{cls.SEARCH_RATE_LIMIT} req/s", "✓")
        table.add_row(
            "Search Keywords",
            ", ".join(k or "[title only]" for k in cls.SEARCH_KEYWORDS),
            "✓",
        )
        table.add_row(
            "Criteria File",
            "Found" if cls.JUDGMENT_CRITERIA_FILE.exists() else "Missing",
            "✓" if cls.JUDGMENT_CRITERIA_FILE.exists() else "–",
        )

        console.print(table)

        warnings = cls.validate()
        if warnings:
            console.print("\n[yellow]Warnings:[/yellow]")
            for warning in warnings:
                console.print(f"  ⚠️  {warning}")


# Singleton instance
config = Config()
