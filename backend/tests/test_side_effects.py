import pytest

from app.services.side_effects import PostCommitHooks


@pytest.mark.asyncio
async def test_failing_hook_does_not_stop_the_rest() -> None:
    ran: list[str] = []
    hooks = PostCommitHooks()

    async def first():
        ran.append("first")

    async def broken():
        raise RuntimeError("notification store down")

    async def last():
        ran.append("last")

    hooks.add("first", first)
    hooks.add("broken", broken)
    hooks.add("last", last)

    failed = await hooks.run()

    assert failed == ["broken"]
    assert ran == ["first", "last"]
    assert len(hooks) == 0


@pytest.mark.asyncio
async def test_hooks_run_once() -> None:
    calls = []
    hooks = PostCommitHooks()

    async def hook():
        calls.append(1)

    hooks.add("once", hook)
    await hooks.run()
    await hooks.run()

    assert calls == [1]
