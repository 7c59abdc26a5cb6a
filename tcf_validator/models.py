"""Data models for the TCF vendor consent validator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .utils import now_iso


class ValidationStatus(str, Enum):
    PENDING = "pending"
    NO_TCF = "no_tcf"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class SiteValidationResult:
    """Outcome of one site visit.

    Fields start unknown (None) and are filled in as the visit progresses.
    A later failure never clears what an earlier step established. Once
    finalize() has stamped the timestamp the record is read-only.
    """
    site: str
    vendor_id: int
    has_tcf: bool | None = None
    cmp_id: int | None = None
    vendor_is_present: bool | None = None
    timestamp: str | None = None
    error: str | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_finalized"):
            raise AttributeError(
                f"result for {self.site} is finalized; cannot set {name}"
            )
        super().__setattr__(name, value)

    @property
    def finalized(self) -> bool:
        return self.__dict__.get("_finalized", False)

    def finalize(self) -> SiteValidationResult:
        """Stamp the completion time and freeze the record."""
        self.timestamp = now_iso()
        object.__setattr__(self, "_finalized", True)
        return self

    @property
    def status(self) -> ValidationStatus:
        if self.timestamp is None:
            return ValidationStatus.PENDING
        if self.error is not None:
            return ValidationStatus.FAILED
        if self.has_tcf is False:
            return ValidationStatus.NO_TCF
        return ValidationStatus.VERIFIED


@dataclass
class PingResponse:
    """Subset of the __tcfapi('ping') return object."""
    cmp_id: int | None = None
    cmp_loaded: bool = False
    cmp_status: str | None = None
    display_status: str | None = None
    gdpr_applies: bool | None = None

    @classmethod
    def from_payload(cls, payload: dict | None) -> PingResponse | None:
        if not payload:
            return None
        raw_id = payload.get("cmpId")
        try:
            cmp_id = int(raw_id) if raw_id is not None else None
        except (TypeError, ValueError):
            cmp_id = None
        return cls(
            cmp_id=cmp_id,
            cmp_loaded=bool(payload.get("cmpLoaded")),
            cmp_status=payload.get("cmpStatus"),
            display_status=payload.get("displayStatus"),
            gdpr_applies=payload.get("gdprApplies"),
        )


def _vendor_key(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw)
    return None


@dataclass
class ConsentVector:
    """Vendor id -> consent flag, as reported by the CMP."""
    consents: dict[int, bool] = field(default_factory=dict)
    source: str = "tcf"

    @classmethod
    def from_tcf(cls, consents: dict) -> ConsentVector:
        """Build from a TCData ``vendor.consents`` object (JSON keys are strings)."""
        vector: dict[int, bool] = {}
        for key, value in consents.items():
            vendor = _vendor_key(key)
            if vendor is not None:
                vector[vendor] = value is True
        return cls(consents=vector, source="tcf")

    @classmethod
    def from_native(cls, payload: Any, source: str) -> ConsentVector:
        """Build from a CMP-native vendor query.

        Accepts a list of vendor ids (or objects carrying an ``id``), or a
        mapping of vendor id to flag. Non-numeric ids (custom vendors) are
        dropped.
        """
        vector: dict[int, bool] = {}
        if isinstance(payload, dict):
            for key, value in payload.items():
                vendor = _vendor_key(key)
                if vendor is not None:
                    vector[vendor] = bool(value)
        elif isinstance(payload, list):
            for item in payload:
                raw = item.get("id") if isinstance(item, dict) else item
                vendor = _vendor_key(raw)
                if vendor is not None:
                    vector[vendor] = True
        else:
            raise TypeError(f"unexpected vendor payload: {type(payload).__name__}")
        return cls(consents=vector, source=source)

    def grants(self, vendor_id: int) -> bool:
        return self.consents.get(vendor_id) is True


@dataclass
class ValidationRun:
    vendor_id: int
    started_at: str = ""
    completed_at: str = ""
    results: list[SiteValidationResult] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == ValidationStatus.FAILED)

    @property
    def without_tcf(self) -> int:
        return sum(1 for r in self.results if r.status == ValidationStatus.NO_TCF)

    @property
    def vendor_found(self) -> int:
        return sum(1 for r in self.results if r.vendor_is_present is True)
