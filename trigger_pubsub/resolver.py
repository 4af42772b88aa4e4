"""Trigger name resolution: logical trigger + options -> physical topic."""

from typing import Any, Callable, Mapping, Optional

TriggerTransform = Callable[[str, Mapping[str, Any]], str]


def identity_transform(trigger: str, options: Mapping[str, Any]) -> str:
    return trigger


def resolve_topic(
    trigger: str,
    options: Optional[Mapping[str, Any]] = None,
    transform: Optional[TriggerTransform] = None,
) -> str:
    """Map a trigger to its topic. Exceptions raised by the transform propagate."""
    transform = transform or identity_transform
    return transform(trigger, options if options is not None else {})
