"""Resumable pipeline state around the manual normalization choice.

The normalization stage ends in `awaiting_selection`; a person then records
the chosen method (`selected`), and the DEA stage moves the state to
`completed`. The state lives in a small YAML file next to the outputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from normaflux.utils.errors import PipelineStateError
from normaflux.utils.semantics import DEFAULT_SELECTED_METHOD
from normaflux.utils.utils import log_info

AWAITING_SELECTION = "awaiting_selection"
SELECTED = "selected"
COMPLETED = "completed"
STATUSES = (AWAITING_SELECTION, SELECTED, COMPLETED)


@dataclass
class PipelineState:
    status: str
    raw_container: str
    normalized_files: Dict[str, str] = field(default_factory=dict)
    normalization_report: Optional[str] = None
    metrics_file: Optional[str] = None
    selected_method: Optional[str] = None
    outputs: Dict[str, str] = field(default_factory=dict)
    updated: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def __post_init__(self):
        if self.status not in STATUSES:
            raise PipelineStateError(f"Unknown pipeline status {self.status!r}; expected one of {STATUSES}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PipelineState":
        path = Path(path)
        if not path.is_file():
            raise PipelineStateError(f"No pipeline state at {path}; run the normalization stage first.")
        data = yaml.safe_load(path.read_text()) or {}
        try:
            return cls(**data)
        except TypeError as exc:
            raise PipelineStateError(f"Malformed pipeline state {path}: {exc}") from exc

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.updated = datetime.now().isoformat(timespec="seconds")
        path.write_text(yaml.safe_dump(asdict(self), sort_keys=False))
        return path

    def select(self, method: str) -> None:
        """Record the human choice; only methods with a written table are accepted."""
        if method not in self.normalized_files:
            raise PipelineStateError(
                f"Method {method!r} has no normalized table; available: {list(self.normalized_files)}"
            )
        self.selected_method = method
        self.status = SELECTED
        self.outputs = {}

    def require_selection(self) -> str:
        if self.selected_method is None or self.status == AWAITING_SELECTION:
            raise PipelineStateError(
                "No normalization method selected. Inspect the comparison report and run "
                f"`normaflux select <method>` (the usual convention is {DEFAULT_SELECTED_METHOD!r})."
            )
        return self.selected_method

    def complete(self, outputs: Dict[str, str]) -> None:
        self.status = COMPLETED
        self.outputs = {k: str(v) for k, v in outputs.items()}

    def describe(self) -> str:
        lines = [f"status: {self.status}", f"raw container: {self.raw_container}"]
        if self.normalization_report:
            lines.append(f"normalization report: {self.normalization_report}")
        lines.append(f"methods: {', '.join(self.normalized_files) or 'none'}")
        lines.append(f"selected method: {self.selected_method or '-'}")
        for key, val in self.outputs.items():
            lines.append(f"{key}: {val}")
        return "\n".join(lines)


def awaiting_selection(
    raw_container: Union[str, Path],
    normalized_files: Dict[str, Path],
    normalization_report: Optional[Path],
    metrics_file: Optional[Path],
) -> PipelineState:
    state = PipelineState(
        status=AWAITING_SELECTION,
        raw_container=str(raw_container),
        normalized_files={k: str(v) for k, v in normalized_files.items()},
        normalization_report=str(normalization_report) if normalization_report else None,
        metrics_file=str(metrics_file) if metrics_file else None,
    )
    log_info(
        "Awaiting normalization choice: inspect the comparison report, then run "
        f"`normaflux select <method>` (convention: {DEFAULT_SELECTED_METHOD})."
    )
    return state
