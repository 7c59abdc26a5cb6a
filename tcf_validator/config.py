"""Configuration loading and typed config dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


@dataclass
class TimeoutSettings:
    navigation_ms: int = 30000
    tcf_detect_ms: int = 10000
    cmp_ping_ms: int = 10000
    ping_interval_ms: int = 500
    consent_button_ms: int = 30000
    consent_event_ms: int = 10000
    shadow_lookup_ms: int = 10000
    native_api_ms: int = 60000  # CMP-specific globals are injected late


@dataclass
class Viewport:
    width: int = 1920
    height: int = 1080


@dataclass
class BrowserSettings:
    locale: str = "en-US"
    viewport: Viewport = field(default_factory=Viewport)
    user_agent: str | None = None
    launch_args: list[str] = field(default_factory=lambda: [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
    ])


@dataclass
class OutputSettings:
    results_dir: str = "results/"
    database_path: str | None = None


@dataclass
class ValidatorConfig:
    project_root: Path = field(default_factory=lambda: Path.cwd())
    vendor_id: int | None = None
    site_list: str = "sitelists/sites.txt"
    headless: bool = True
    timeouts: TimeoutSettings = field(default_factory=TimeoutSettings)
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    output: OutputSettings = field(default_factory=OutputSettings)

    def resolve_path(self, relative_path: str) -> Path:
        """Resolve a relative path against the project root."""
        p = Path(relative_path)
        if p.is_absolute():
            return p
        return self.project_root / p


def _build(cls, data: dict | None):
    """Build a flat dataclass from a dict, ignoring unknown keys."""
    if not data:
        return cls()
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


def load_config(path: str | Path) -> ValidatorConfig:
    """Load configuration from a YAML file, falling back to defaults."""
    config_path = Path(path)
    project_root = config_path.parent

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        raw = {}

    browser_raw = raw.get("browser") or {}
    defaults = BrowserSettings()

    return ValidatorConfig(
        project_root=project_root,
        vendor_id=raw.get("vendor_id"),
        site_list=raw.get("site_list", "sitelists/sites.txt"),
        headless=raw.get("headless", True),
        timeouts=_build(TimeoutSettings, raw.get("timeouts")),
        browser=BrowserSettings(
            locale=browser_raw.get("locale", defaults.locale),
            viewport=_build(Viewport, browser_raw.get("viewport")),
            user_agent=browser_raw.get("user_agent"),
            launch_args=browser_raw.get("launch_args", defaults.launch_args),
        ),
        output=_build(OutputSettings, raw.get("output")),
    )
