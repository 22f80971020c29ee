from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PolicyConfig:
    # Spacing used when a suggestion needs a brand-new rod.
    standard_gap_mm: float = 600.0
    # Spans tried, in order, when a suggestion extends a rod up or down.
    rod_extension_spans_mm: list[float] = field(default_factory=lambda: [200.0, 300.0])
    minimal_rod_sku: str = "1P"

    # Ghost presentation
    ghost_preview_offset_mm: float = 300.0
    ghost_dedupe_tolerance_mm: float = 1.0

    suggest_rod_extensions: bool = True

    @classmethod
    def from_config(cls, config: dict) -> "PolicyConfig":
        ghosts = config.get("ghosts", {}) or {}
        return cls(
            standard_gap_mm=float(ghosts.get("standard_gap_mm", 600.0)),
            rod_extension_spans_mm=[
                float(x) for x in ghosts.get("rod_extension_spans_mm", [200.0, 300.0])
            ],
            minimal_rod_sku=str(ghosts.get("minimal_rod_sku", "1P")),
            ghost_preview_offset_mm=float(ghosts.get("ghost_preview_offset_mm", 300.0)),
            ghost_dedupe_tolerance_mm=float(ghosts.get("ghost_dedupe_tolerance_mm", 1.0)),
            suggest_rod_extensions=bool(ghosts.get("suggest_rod_extensions", True)),
        )
