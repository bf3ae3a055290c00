"""Built-in tools: files, shell, web fetch and memory.

Handlers take the raw JSON argument text and raise on failure; the executor
turns exceptions into ``Error: ...`` results for the model. File paths are
resolved against the working directory and may not escape it.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import httpx

from yagi.cancel import CancelToken
from yagi.memory import MemoryStore
from yagi.registry import ToolRegistry

__all__ = ["register_builtin_tools"]

# Limits
_MAX_COMMAND_TIMEOUT = 300  # seconds
_MAX_OUTPUT_CHARS = 100 * 1024
_MAX_FILE_SIZE = 1 * 1024 * 1024
_MAX_FETCH_CHARS = 50_000
_MAX_LISTED = 500


def _args(arguments: str, *required: str) -> dict[str, Any]:
    """Parse a JSON argument object and check required keys."""
    try:
        parsed = json.loads(arguments or "{}")
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON arguments: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("arguments must be a JSON object")
    missing = [key for key in required if parsed.get(key) in (None, "")]
    if missing:
        raise ValueError(f"missing required argument(s): {', '.join(missing)}")
    return parsed


def _schema(properties: dict[str, Any], *required: str) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": list(required)}


def _string(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


def _truncate(text: str, limit: int, label: str = "output") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [{label} truncated at {limit} characters]"


def _validate_path(path_str: str, workdir: Path) -> Path:
    """Resolve *path_str* under *workdir*.

    Raises ValueError if the path escapes the working directory.
    """
    path = Path(path_str)
    target = (path if path.is_absolute() else workdir / path).resolve()
    if not target.is_relative_to(workdir):
        raise ValueError(f"path '{path_str}' is outside the working directory")
    return target


def register_builtin_tools(
    registry: ToolRegistry,
    *,
    workdir: str | Path = ".",
    memory: Optional[MemoryStore] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> None:
    """Register the built-in tools on *registry*.

    Read-only tools are marked safe; anything that writes, deletes or runs a
    command goes through the approval gate. Memory tools are only registered
    when a MemoryStore is given.
    """
    root = Path(workdir).resolve()

    async def read_file(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "path")
        target = _validate_path(args["path"], root)
        if not target.is_file():
            raise FileNotFoundError(f"no such file: {args['path']}")
        if target.stat().st_size > _MAX_FILE_SIZE:
            raise ValueError(f"file is larger than {_MAX_FILE_SIZE} bytes")
        return await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")

    async def write_file(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "path")
        content = str(args.get("content", ""))
        target = _validate_path(args["path"], root)

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(write)
        return f"Wrote {len(content)} characters to {args['path']}"

    async def edit_file(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "path", "old_text")
        target = _validate_path(args["path"], root)
        old, new = str(args["old_text"]), str(args.get("new_text", ""))
        text = await asyncio.to_thread(target.read_text, encoding="utf-8")
        count = text.count(old)
        if count == 0:
            raise ValueError("old_text not found in file")
        if count > 1:
            raise ValueError(f"old_text matches {count} times; make it unique")
        await asyncio.to_thread(target.write_text, text.replace(old, new, 1), encoding="utf-8")
        return f"Edited {args['path']}"

    async def delete_file(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "path")
        target = _validate_path(args["path"], root)
        if not target.is_file():
            raise FileNotFoundError(f"no such file: {args['path']}")
        await asyncio.to_thread(target.unlink)
        return f"Deleted {args['path']}"

    async def list_files(arguments: str, token: CancelToken) -> str:
        args = _args(arguments)
        target = _validate_path(args.get("path") or ".", root)
        if not target.is_dir():
            raise NotADirectoryError(f"not a directory: {args.get('path') or '.'}")
        entries = sorted(
            p.name + ("/" if p.is_dir() else "") for p in target.iterdir()
        )
        return "\n".join(entries[:_MAX_LISTED]) or "(empty directory)"

    async def glob_files(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "pattern")
        matches = sorted(
            str(p.relative_to(root)) for p in root.glob(args["pattern"]) if p.is_file()
        )
        return "\n".join(matches[:_MAX_LISTED]) or "(no matches)"

    async def search_files(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "text")
        needle = str(args["text"])
        pattern = args.get("glob") or "**/*"

        def search() -> list[str]:
            hits = []
            for path in sorted(root.glob(pattern)):
                if not path.is_file() or path.stat().st_size > _MAX_FILE_SIZE:
                    continue
                try:
                    lines = path.read_text(encoding="utf-8").splitlines()
                except (UnicodeDecodeError, OSError):
                    continue
                for lineno, line in enumerate(lines, 1):
                    if needle in line:
                        hits.append(f"{path.relative_to(root)}:{lineno}: {line.strip()}")
                        if len(hits) >= _MAX_LISTED:
                            return hits
            return hits

        hits = await asyncio.to_thread(search)
        return "\n".join(hits) or "(no matches)"

    async def run_command(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "command")
        timeout = max(1, min(int(args.get("timeout") or 30), _MAX_COMMAND_TIMEOUT))
        proc = await asyncio.create_subprocess_shell(
            args["command"],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(root),
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise TimeoutError(f"command timed out after {timeout}s") from None
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        parts = []
        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        if out:
            parts.append(_truncate(out, _MAX_OUTPUT_CHARS))
        if err:
            parts.append("STDERR:\n" + _truncate(err, _MAX_OUTPUT_CHARS, "stderr"))
        if proc.returncode != 0:
            parts.append(f"Exit code: {proc.returncode}")
        return "\n".join(parts) or "(no output)"

    async def fetch_url(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "url")
        url = str(args["url"])
        if not url.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        if http is not None:
            response = await http.get(url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as client:
                response = await client.get(url)
        response.raise_for_status()
        return _truncate(response.text, _MAX_FETCH_CHARS, "page")

    registry.register(
        "read_file", "Read a text file.",
        _schema({"path": _string("File path relative to the working directory")}, "path"),
        read_file, safe=True,
    )
    registry.register(
        "write_file", "Create or overwrite a text file.",
        _schema(
            {"path": _string("File path"), "content": _string("Full file content")},
            "path", "content",
        ),
        write_file,
    )
    registry.register(
        "edit_file", "Replace one exact occurrence of old_text with new_text in a file.",
        _schema(
            {
                "path": _string("File path"),
                "old_text": _string("Text to replace; must occur exactly once"),
                "new_text": _string("Replacement text"),
            },
            "path", "old_text", "new_text",
        ),
        edit_file,
    )
    registry.register(
        "delete_file", "Delete a file.",
        _schema({"path": _string("File path")}, "path"),
        delete_file,
    )
    registry.register(
        "list_files", "List the entries of a directory.",
        _schema({"path": _string("Directory path; defaults to the working directory")}),
        list_files, safe=True,
    )
    registry.register(
        "glob", "Find files matching a glob pattern such as **/*.py.",
        _schema({"pattern": _string("Glob pattern")}, "pattern"),
        glob_files, safe=True,
    )
    registry.register(
        "search_files", "Search file contents for a literal string.",
        _schema(
            {"text": _string("Text to find"), "glob": _string("Restrict to files matching this glob")},
            "text",
        ),
        search_files, safe=True,
    )
    registry.register(
        "run_command", "Run a shell command in the working directory.",
        _schema(
            {
                "command": _string("Shell command"),
                "timeout": {"type": "integer", "description": "Seconds (default 30, max 300)"},
            },
            "command",
        ),
        run_command,
    )
    registry.register(
        "fetch_url", "Fetch a web page over HTTP(S) and return its body.",
        _schema({"url": _string("http:// or https:// URL")}, "url"),
        fetch_url, safe=True,
    )

    if memory is not None:
        _register_memory_tools(registry, memory)


def _register_memory_tools(registry: ToolRegistry, memory: MemoryStore) -> None:
    async def save_memory(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "key", "value")
        await asyncio.to_thread(memory.set, str(args["key"]), str(args["value"]))
        return f"Saved {args['key']}"

    async def get_memory(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "key")
        value = memory.get(str(args["key"]))
        if value is None:
            raise LookupError(f"nothing stored under {args['key']!r}")
        return value

    async def delete_memory(arguments: str, token: CancelToken) -> str:
        args = _args(arguments, "key")
        if not await asyncio.to_thread(memory.delete, str(args["key"])):
            raise LookupError(f"nothing stored under {args['key']!r}")
        return f"Deleted {args['key']}"

    async def list_memory(arguments: str, token: CancelToken) -> str:
        entries = memory.all()
        if not entries:
            return "(memory is empty)"
        return "\n".join(f"{key}: {value}" for key, value in entries.items())

    key_schema = _schema({"key": _string("Memory key")}, "key")
    registry.register(
        "save_memory", "Remember a fact across sessions.",
        _schema({"key": _string("Memory key"), "value": _string("Fact to remember")}, "key", "value"),
        save_memory, safe=True,
    )
    registry.register("get_memory", "Recall a remembered fact.", key_schema, get_memory, safe=True)
    registry.register("delete_memory", "Forget a remembered fact.", key_schema, delete_memory, safe=True)
    registry.register("list_memory", "List all remembered facts.", _schema({}), list_memory, safe=True)
