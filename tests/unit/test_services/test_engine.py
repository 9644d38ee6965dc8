"""Unit tests for the DetectionEngine facade and the global instance."""
import pytest

from qrdx.backends import protocol
from qrdx.backends.protocol import TransformKind
from qrdx.config.settings import Config
from qrdx.core.entities import DetectionOptions
from qrdx.services import engine as engine_module
from qrdx.services.engine import DetectionEngine, get_detection_engine, reset_detection_engine

from fakes import ChannelFactorySpy, NeverDecoder, ScriptedDecoder, canvas, finder_grid


@pytest.fixture
def fresh_global():
    reset_detection_engine()
    yield
    reset_detection_engine()


class TestGlobalEngine:
    def test_same_instance(self, fresh_global):
        assert get_detection_engine() is get_detection_engine()

    def test_config_applies_on_creation_only(self, fresh_global):
        first = get_detection_engine(Config(worker_mode="thread", kernel_size=7))
        second = get_detection_engine(Config(kernel_size=11))

        assert second is first
        assert first.config.kernel_size == 7

    def test_reset_creates_new_instance(self, fresh_global):
        first = get_detection_engine()
        reset_detection_engine()

        assert get_detection_engine() is not first
        assert engine_module._detection_engine is not None


class TestDetectionEngine:
    """Test suite for DetectionEngine wiring."""

    @pytest.mark.asyncio
    async def test_detect_starts_backend_on_first_use(self, thread_config):
        spy = ChannelFactorySpy()
        engine = DetectionEngine(thread_config, channel_factory=spy, decoder=NeverDecoder())

        await engine.detect(canvas())
        await engine.detect(canvas())

        assert spy.spawn_count == 1
        sent_types = [m["type"] for m in spy.channels[0].sent]
        assert sent_types[0] == protocol.INIT
        assert TransformKind.MORPHOLOGY.value in sent_types
        assert engine.status().ready
        engine.close()

    @pytest.mark.asyncio
    async def test_no_backend_when_disabled(self, thread_config):
        spy = ChannelFactorySpy()
        engine = DetectionEngine(thread_config, channel_factory=spy, decoder=NeverDecoder())

        await engine.detect(canvas(), use_opencv_backend=False)

        assert spy.spawn_count == 0
        assert not engine.status().ready

    @pytest.mark.asyncio
    async def test_failed_init_is_not_retried_implicitly(self, thread_config):
        spy = ChannelFactorySpy(init_reply=protocol.INIT_ERROR)
        engine = DetectionEngine(thread_config, channel_factory=spy, decoder=NeverDecoder())

        assert await engine.detect(canvas()) == []
        assert await engine.detect(canvas()) == []

        assert spy.spawn_count == 1
        assert engine.status().error == "boom"

        spy.channel_kwargs["init_reply"] = protocol.INIT_SUCCESS
        assert (await engine.init()).ready

    @pytest.mark.asyncio
    async def test_overrides_build_options_from_config(self, thread_config):
        decoder = ScriptedDecoder({None: "A", TransformKind.OTSU_THRESHOLD: "B"})
        engine = DetectionEngine(thread_config, channel_factory=ChannelFactorySpy(), decoder=decoder)

        results = await engine.detect(canvas(), use_opencv_backend=False, detect_multiple=True)

        assert [r.decoded_text for r in results] == ["A"]
        engine.close()

    @pytest.mark.asyncio
    async def test_explicit_options_win(self, thread_config):
        engine = DetectionEngine(thread_config, channel_factory=ChannelFactorySpy(),
                                 decoder=ScriptedDecoder({None: "A"}))

        results = await engine.detect(canvas(), DetectionOptions(use_opencv_backend=False))

        assert results[0].strategy_name == "direct"

    @pytest.mark.asyncio
    async def test_locate_finder_patterns_in_process(self, thread_config):
        thread_config.use_opencv_backend = False
        engine = DetectionEngine(thread_config, channel_factory=ChannelFactorySpy(), decoder=NeverDecoder())

        found = await engine.locate_finder_patterns(finder_grid())

        assert len(found) == 3

    @pytest.mark.asyncio
    async def test_async_context_manager_closes(self, thread_config):
        spy = ChannelFactorySpy()
        async with DetectionEngine(thread_config, channel_factory=spy, decoder=NeverDecoder()) as engine:
            await engine.init()

        assert spy.channels[0].closed
        assert not engine.status().ready
