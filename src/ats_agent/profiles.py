"""Load identity profiles exported from the local vault."""

from __future__ import annotations

import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, Optional

from .models import IdentityProfile, ResumeFile

logger = logging.getLogger(__name__)

# Visa types that mean the person may work without sponsorship.
AUTHORIZED_VISA_TYPES = {"citizen", "us citizen", "permanent resident", "green card"}

SAMPLE_PROFILE = IdentityProfile(
    first_name="John",
    last_name="Doe",
    email="john.doe@example.com",
    phone="+1 (555) 123-4567",
    address="123 Main St, San Francisco, CA 94102",
    country="United States",
    work_authorized=True,
    sponsorship_required=False,
)


def load_profile(path: Path, resume_path: Optional[Path] = None) -> IdentityProfile:
    """Read a vault export (flat, or nested ``identity`` / ``work_auth`` sections)."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Profile at {path} must be a JSON object")
    profile = IdentityProfile.model_validate(_flatten(payload))
    if resume_path is not None:
        profile.resume = load_resume(Path(resume_path))
    logger.info("Loaded profile for %s (resume=%s)", profile.full_name, bool(profile.resume))
    return profile


def load_resume(path: Path) -> ResumeFile:
    mime_type, _ = mimetypes.guess_type(path.name)
    return ResumeFile(name=path.name, mime_type=mime_type or "application/pdf", data=path.read_bytes())


def _flatten(payload: Dict[str, Any]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    identity = payload.get("identity")
    if isinstance(identity, dict):
        data.update(identity)
    data.update({key: value for key, value in payload.items() if key not in {"identity", "work_auth"}})

    work_auth = payload.get("work_auth")
    if isinstance(work_auth, dict):
        visa_type = str(work_auth.get("visa_type") or "").strip().lower()
        if "work_authorized" in work_auth:
            data["work_authorized"] = bool(work_auth["work_authorized"])
        elif visa_type:
            data["work_authorized"] = visa_type in AUTHORIZED_VISA_TYPES
        if "sponsorship_required" in work_auth:
            data["sponsorship_required"] = bool(work_auth["sponsorship_required"])
    return data
