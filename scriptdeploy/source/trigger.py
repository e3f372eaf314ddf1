from __future__ import annotations

import os
from typing import Mapping, Optional

from ..config import TriggerConfig
from ..models import TriggerEvent


def trigger_from_env(
    environ: Optional[Mapping[str, str]] = None,
    *,
    event: Optional[str] = None,
    ref: Optional[str] = None,
) -> TriggerEvent:
    """Build the trigger from explicit values, falling back to GitHub Actions env vars.

    A bare branch name passed as ``ref`` is expanded to ``refs/heads/<name>``.
    """
    env = os.environ if environ is None else environ
    event_name = str(event if event is not None else env.get("GITHUB_EVENT_NAME", "") or "").strip()
    ref_val = str(ref if ref is not None else env.get("GITHUB_REF", "") or "").strip()
    if ref_val and not ref_val.startswith("refs/"):
        ref_val = f"refs/heads/{ref_val}"
    return TriggerEvent(event_name=event_name, ref=ref_val)


def is_triggered(trigger: TriggerEvent, cfg: TriggerConfig) -> bool:
    return trigger.event_name == cfg.event and trigger.branch == cfg.branch


def describe_mismatch(trigger: TriggerEvent, cfg: TriggerConfig) -> str:
    got_event = trigger.event_name or "<none>"
    got_ref = trigger.ref or "<none>"
    return f"event={got_event} ref={got_ref} (runs only on {cfg.event} to refs/heads/{cfg.branch})"
