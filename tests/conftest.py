"""
Shared test fixtures for polyrun tests.
"""
import pytest

from fakes import LocalProcessEngine, PYTHON_PROFILE, COMPILED_PYTHON_PROFILE
from polyrun.config.engine import EngineConfig
from polyrun.runtime.engine import CodeExecutionEngine
from polyrun.runtime.registry import LanguageRegistry


@pytest.fixture
def local_engine():
    return LocalProcessEngine()


@pytest.fixture
def local_registry():
    return LanguageRegistry([PYTHON_PROFILE, COMPILED_PYTHON_PROFILE], {"py": "python"})


@pytest.fixture
def sandbox_root(tmp_path):
    return str(tmp_path / "sandbox")


@pytest.fixture
def engine_config(sandbox_root):
    return EngineConfig(timeout_ms=20_000, output_limit_bytes=64 * 1024, sandbox_root=sandbox_root, kill_grace=2.0)


@pytest.fixture
def make_engine(engine_config, local_registry):
    created = []

    def _make(client=None, config=None, registry=None):
        engine = CodeExecutionEngine(
            config or engine_config,
            client=client or LocalProcessEngine(),
            registry=registry or local_registry,
        )
        created.append(engine)
        return engine

    yield _make
    for engine in created:
        engine.close()


@pytest.fixture
def execution_engine(make_engine, local_engine):
    return make_engine(client=local_engine)
