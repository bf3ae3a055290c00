"""
Request parameters merged into every chat-completion call the engine makes.

`EngineConfig.params` takes a flat dict. Keys every OpenAI-compatible
endpoint understands (temperature, max_tokens, top_p, stop, seed,
parallel_tool_calls, ...) are sent as top-level arguments; anything else is
provider specific (reasoning_effort, verbosity, ...) and travels in
`extra_body` untouched.

The engine owns model, messages, tools and stream; passing them is an error.
"""

from __future__ import annotations

from typing import Any

STANDARD_KEYS = {
    "temperature",
    "max_tokens",
    "top_p",
    "stop",
    "user",
    "frequency_penalty",
    "presence_penalty",
    "parallel_tool_calls",
    "seed",
}

RESERVED_KEYS = {"model", "messages", "tools", "stream"}


def normalize_params(params: dict | None) -> dict:
    """
    Split *params* into standard keys and an `extra` dict.

    An explicit `extra` entry wins over keys moved there; None values are
    dropped.

    Example
    -------
    >>> normalize_params({
    ...   "temperature": 0.2,
    ...   "reasoning_effort": "high",
    ...   "extra": {"verbosity": "high"}
    ... })
    {'temperature': 0.2, 'extra': {'reasoning_effort': 'high', 'verbosity': 'high'}}
    """
    if params is None:
        return {"extra": {}}
    if not isinstance(params, dict):
        raise TypeError(f"params must be a dict, got {type(params).__name__}")

    reserved = RESERVED_KEYS.intersection(params)
    if reserved:
        raise ValueError(f"params may not set {', '.join(sorted(reserved))}")

    user_extra = params.get("extra") or {}
    if not isinstance(user_extra, dict):
        raise TypeError("params['extra'] must be a dict")

    std: dict = {}
    extra: dict = {}
    for key, value in params.items():
        if key == "extra" or value is None:
            continue
        if key in STANDARD_KEYS:
            std[key] = value
        else:
            extra[key] = value

    std["extra"] = {**extra, **user_extra}
    return std


def request_kwargs(params: dict) -> dict[str, Any]:
    """Flatten normalized params into ``chat.completions.create`` keyword arguments."""
    kwargs = {k: v for k, v in params.items() if k != "extra"}
    extra = params.get("extra") or {}
    if extra:
        kwargs["extra_body"] = dict(extra)
    return kwargs
