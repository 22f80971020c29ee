from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class ServerCfg(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class StorageCfg(BaseModel):
    sessions_root: str = "sessions"
    # Write a snapshot after every committed edit, not only on explicit request.
    autosave_snapshots: bool = False


class CatalogCfg(BaseModel):
    # If empty => ./config/catalog.yaml when present, else the built-in catalog.
    catalog_yaml_path: str | None = None


class PolicyCfg(BaseModel):
    policy_yaml_path: str | None = None


class PricingCfg(BaseModel):
    currency: str = "NOK"
    # Unit prices keyed by SKU name; unlisted SKUs cost 0.
    rods: dict[str, float] = Field(
        default_factory=lambda: {
            "1P": 49.0,
            "2P_2": 99.0,
            "2P_3": 119.0,
            "3P_22": 149.0,
            "3P_23": 169.0,
            "3P_32": 169.0,
            "4P_223": 219.0,
            "4P_232": 219.0,
            "4P_322": 219.0,
            "5P_2232": 269.0,
            "5P_2322": 269.0,
            "5P_3223": 289.0,
            "6P_22322": 319.0,
            "6P_32232": 339.0,
            "7P_322322": 389.0,
        }
    )
    plates: dict[str, float] = Field(
        default_factory=lambda: {
            "670mm": 399.0,
            "1270mm-single": 699.0,
            "1270mm-double": 749.0,
            "1870mm": 1099.0,
        }
    )
    support_rod: float = 29.0


class UndoCfg(BaseModel):
    max_size: int = 150


class ObservabilityCfg(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = True
    metrics_enabled: bool = True


class RetentionCfg(BaseModel):
    enabled: bool = True
    max_age_days: int = 14
    cleanup_interval_minutes: int = 60
    trace_max_bytes: int = 5_000_000
    trace_max_lines: int = 20_000
    # In-memory decision trace per session.
    memory_trace_max_events: int = 5000


class AppConfig(BaseModel):
    server: ServerCfg = Field(default_factory=ServerCfg)
    storage: StorageCfg = Field(default_factory=StorageCfg)
    catalog: CatalogCfg = Field(default_factory=CatalogCfg)
    policy: PolicyCfg = Field(default_factory=PolicyCfg)
    pricing: PricingCfg = Field(default_factory=PricingCfg)
    undo: UndoCfg = Field(default_factory=UndoCfg)
    observability: ObservabilityCfg = Field(default_factory=ObservabilityCfg)
    retention: RetentionCfg = Field(default_factory=RetentionCfg)


def load_app_config(path: Path) -> AppConfig:
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config YAML must be a mapping, got {type(raw).__name__}")
    return AppConfig(**raw)


def find_default_config() -> Path | None:
    p = Path("config") / "default.yaml"
    if p.exists() and p.is_file():
        return p
    return None
