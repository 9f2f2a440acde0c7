import asyncio

from flowedit_backend.render import RenderScheduler


class FakeRenderer:
    """Records every render call; buffers containing "bad" fail to render"""

    def __init__(self):
        self.calls = []

    async def render(self, code):
        self.calls.append(code)
        if "bad" in code:
            raise ValueError("Parse error on line 2")
        return f"<svg>{code}</svg>"


class TestRenderScheduler:

    def test_only_latest_buffer_is_rendered(self):
        renderer = FakeRenderer()
        results = []

        async def scenario():
            scheduler = RenderScheduler(renderer, results.append, delay=0.01)
            scheduler.schedule("flowchart LR\n    A")
            scheduler.schedule("flowchart LR\n    A --> B")
            await scheduler.flush()
            return scheduler

        scheduler = asyncio.run(scenario())

        assert renderer.calls == ["flowchart LR\n    A --> B"]
        assert results == [None]
        assert scheduler.last_output == "<svg>flowchart LR\n    A --> B</svg>"
        assert not scheduler.pending

    def test_failure_is_reported_verbatim(self):
        renderer = FakeRenderer()
        results = []

        async def scenario():
            scheduler = RenderScheduler(renderer, results.append, delay=0)
            scheduler.schedule("flowchart LR\n    bad -->")
            await scheduler.flush()

        asyncio.run(scenario())

        assert results == ["Parse error on line 2"]

    def test_cancel(self):
        renderer = FakeRenderer()
        results = []

        async def scenario():
            scheduler = RenderScheduler(renderer, results.append, delay=0.01)
            scheduler.schedule("flowchart LR")
            scheduler.cancel()
            await asyncio.sleep(0.05)
            return scheduler

        scheduler = asyncio.run(scenario())

        assert renderer.calls == []
        assert results == []
        assert not scheduler.pending
