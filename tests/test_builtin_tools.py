"""Tests for the built-in tools and the memory store."""

import asyncio
import json
import os
import stat
import sys

import httpx
import pytest

from yagi.builtin_tools import register_builtin_tools
from yagi.cancel import CancelToken
from yagi.executor import CANCELLED_RESULT, ToolExecutor
from yagi.memory import MemoryStore
from yagi.registry import ToolRegistry


@pytest.fixture
def memory(tmp_path):
    store = MemoryStore(tmp_path / "config" / "memory.json")
    store.load()
    return store


@pytest.fixture
def workdir(tmp_path):
    root = tmp_path / "work"
    root.mkdir()
    (root / "notes.txt").write_text("alpha\nbeta\n")
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text("print('beta')\n")
    return root


@pytest.fixture
def executor(workdir, memory):
    registry = ToolRegistry()
    register_builtin_tools(registry, workdir=workdir, memory=memory)
    return ToolExecutor(registry)


async def call(executor, name, **arguments):
    return await executor.execute(name, json.dumps(arguments), token=CancelToken())


def test_safety_flags(executor):
    registry = executor.registry
    assert registry.get("read_file").safe
    assert registry.get("glob").safe
    assert not registry.get("write_file").safe
    assert not registry.get("run_command").safe
    assert not registry.get("delete_file").safe


def test_memory_tools_only_with_store(workdir):
    registry = ToolRegistry()
    register_builtin_tools(registry, workdir=workdir)
    assert "save_memory" not in registry
    assert "read_file" in registry


@pytest.mark.asyncio
async def test_read_file(executor):
    assert await call(executor, "read_file", path="notes.txt") == ("alpha\nbeta\n", False)


@pytest.mark.asyncio
async def test_path_outside_workdir_is_rejected(executor):
    result, is_error = await call(executor, "read_file", path="../outside.txt")

    assert is_error
    assert "outside the working directory" in result


@pytest.mark.asyncio
async def test_missing_argument(executor):
    result, is_error = await call(executor, "read_file")

    assert is_error
    assert result.startswith("Error: missing required argument(s): path")


@pytest.mark.asyncio
async def test_invalid_json_arguments(executor):
    result, is_error = await executor.execute("read_file", "{oops")

    assert is_error
    assert "invalid JSON arguments" in result


@pytest.mark.asyncio
async def test_write_then_edit(executor, workdir):
    _, is_error = await call(executor, "write_file", path="out/new.txt", content="hello world")
    assert not is_error

    result, is_error = await call(
        executor, "edit_file", path="out/new.txt", old_text="world", new_text="there"
    )

    assert not is_error
    assert (workdir / "out" / "new.txt").read_text() == "hello there"


@pytest.mark.asyncio
async def test_edit_requires_unique_match(executor, workdir):
    (workdir / "dup.txt").write_text("x x")

    result, is_error = await call(executor, "edit_file", path="dup.txt", old_text="x", new_text="y")

    assert is_error
    assert "matches 2 times" in result


@pytest.mark.asyncio
async def test_delete_file(executor, workdir):
    _, is_error = await call(executor, "delete_file", path="notes.txt")

    assert not is_error
    assert not (workdir / "notes.txt").exists()


@pytest.mark.asyncio
async def test_list_glob_and_search(executor):
    listing, _ = await call(executor, "list_files")
    assert listing.splitlines() == ["notes.txt", "src/"]

    matches, _ = await call(executor, "glob", pattern="**/*.py")
    assert matches == os.path.join("src", "app.py")

    hits, _ = await call(executor, "search_files", text="beta")
    assert "notes.txt:2: beta" in hits.splitlines()
    assert any(line.startswith(os.path.join("src", "app.py") + ":1:") for line in hits.splitlines())


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell")
async def test_run_command(executor):
    result, is_error = await call(executor, "run_command", command="echo hi; echo oops >&2; exit 3")

    assert not is_error
    assert "hi" in result
    assert "STDERR:\noops" in result
    assert "Exit code: 3" in result


@pytest.mark.asyncio
async def test_fetch_url_uses_given_client(workdir):
    def handler(request):
        return httpx.Response(200, text=f"page at {request.url.path}")

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    registry = ToolRegistry()
    register_builtin_tools(registry, workdir=workdir, http=http)

    result, is_error = await call(ToolExecutor(registry), "fetch_url", url="https://example.com/docs")
    await http.aclose()

    assert (result, is_error) == ("page at /docs", False)


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell")
async def test_cancelled_command_is_killed_and_reaped(executor, workdir):
    token = CancelToken()
    pid_file = workdir / "pid"

    async def cancel_once_started():
        while not pid_file.exists() or not pid_file.read_text().strip():
            await asyncio.sleep(0.01)
        token.cancel()

    canceller = asyncio.create_task(cancel_once_started())
    result, is_error = await executor.execute(
        "run_command", json.dumps({"command": "echo $$ > pid; exec sleep 30"}), token=token
    )
    await canceller

    assert (result, is_error) == (CANCELLED_RESULT, True)
    with pytest.raises(ProcessLookupError):
        os.kill(int(pid_file.read_text()), 0)


@pytest.mark.asyncio
async def test_fetch_url_follows_redirects_with_given_client(workdir):
    def handler(request):
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "https://example.com/new"})
        return httpx.Response(200, text=f"page at {request.url.path}")

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    registry = ToolRegistry()
    register_builtin_tools(registry, workdir=workdir, http=http)

    result, is_error = await call(ToolExecutor(registry), "fetch_url", url="https://example.com/old")
    await http.aclose()

    assert (result, is_error) == ("page at /new", False)


@pytest.mark.asyncio
async def test_fetch_url_rejects_other_schemes(executor):
    result, is_error = await call(executor, "fetch_url", url="file:///etc/passwd")

    assert is_error
    assert "http:// or https://" in result


@pytest.mark.asyncio
async def test_memory_tools_round_trip(executor, memory):
    assert await call(executor, "save_memory", key="editor", value="vim") == ("Saved editor", False)
    assert await call(executor, "get_memory", key="editor") == ("vim", False)
    assert await call(executor, "list_memory") == ("editor: vim", False)
    assert await call(executor, "delete_memory", key="editor") == ("Deleted editor", False)

    result, is_error = await call(executor, "get_memory", key="editor")
    assert is_error
    assert "nothing stored under 'editor'" in result


def test_memory_store_persists_privately(tmp_path):
    path = tmp_path / "memory.json"
    store = MemoryStore(path)
    store.set("lang", "python")

    reloaded = MemoryStore(path)
    reloaded.load()

    assert reloaded.get("lang") == "python"
    if sys.platform != "win32":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_memory_markdown(tmp_path):
    store = MemoryStore(tmp_path / "memory.json")
    assert store.as_markdown() == ""

    store.set("name", "Ada")

    assert store.as_markdown() == "\n---\n## Learned Information\n- name: Ada\n"


def test_memory_rejects_non_object(tmp_path):
    path = tmp_path / "memory.json"
    path.write_text("[1, 2]")

    with pytest.raises(ValueError):
        MemoryStore(path).load()
