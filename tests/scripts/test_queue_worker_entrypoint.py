from __future__ import annotations

from types import ModuleType, SimpleNamespace

import pytest
from pytest_mock import MockerFixture

from genqueue.domain.exceptions import StoreConnectionError
from genqueue.domain.task_queue import HealthReport, Priority


def _module() -> ModuleType:
    return __import__("scripts.run_queue_worker", fromlist=["main"])


def _args(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "generator": "providers.replicate:create_generator",
        "priorities": None,
        "dependency": None,
        "batch_size": 8,
        "poll_interval_seconds": None,
        "run_once": True,
        "json_logs": False,
        "metrics": False,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _patch_runtime(
    mocker: MockerFixture, module: ModuleType, *, healthy: bool = True
) -> SimpleNamespace:
    settings = SimpleNamespace(
        log_level="INFO",
        json_logs=False,
        worker_poll_interval_seconds=2.0,
        lease_reclaim_interval_seconds=30.0,
    )
    mocker.patch.object(module, "get_settings", return_value=settings)
    generator = mocker.Mock()
    mocker.patch.object(module, "load_generator", return_value=generator)
    context = mocker.Mock()
    context.queue_manager.health_check.return_value = HealthReport(
        status="healthy" if healthy else "unhealthy",
        details={} if healthy else {"error": "down"},
    )
    mocker.patch.object(module, "build_queue_context", return_value=context)
    handlers = {"ai_cover_generation": mocker.Mock()}
    mocker.patch.object(module, "create_ai_task_handlers", return_value=handlers)
    worker = mocker.Mock()
    mocker.patch.object(module, "QueueWorker", return_value=worker)
    mocker.patch.object(module.pipeline_runtime, "initialize_logging")
    controller = mocker.Mock()
    mocker.patch.object(
        module.pipeline_runtime,
        "create_shutdown_controller",
        return_value=controller,
    )
    mocker.patch.object(module.pipeline_runtime, "install_signal_handlers")
    serve = mocker.patch.object(module.pipeline_runtime, "serve_worker")
    return SimpleNamespace(
        settings=settings,
        generator=generator,
        context=context,
        handlers=handlers,
        worker=worker,
        controller=controller,
        serve=serve,
    )


def test_run_queue_worker_once(mocker: MockerFixture) -> None:
    module = _module()
    mocker.patch.object(
        module,
        "parse_args",
        return_value=_args(priorities=["low", "critical"], dependency="ai_generation"),
    )
    runtime = _patch_runtime(mocker, module)

    exit_code = module.main([])

    assert exit_code == 0
    module.create_ai_task_handlers.assert_called_once_with(
        orchestrator=runtime.context.orchestrator, generator=runtime.generator
    )
    module.QueueWorker.assert_called_once_with(
        task_queue=runtime.context.queue_manager,
        handlers=runtime.handlers,
        priorities=[Priority.LOW, Priority.CRITICAL],
        dependency="ai_generation",
        batch_size=8,
    )
    runtime.serve.assert_called_once_with(
        runtime.worker,
        runtime.controller,
        poll_interval=2.0,
        reclaim_interval=30.0,
        run_once=True,
    )


def test_run_queue_worker_uses_cli_poll_interval(mocker: MockerFixture) -> None:
    module = _module()
    mocker.patch.object(
        module, "parse_args", return_value=_args(poll_interval_seconds=0.5)
    )
    runtime = _patch_runtime(mocker, module)

    assert module.main([]) == 0

    assert runtime.serve.call_args.kwargs["poll_interval"] == 0.5
    priorities = module.QueueWorker.call_args.kwargs["priorities"]
    assert priorities[0] is Priority.CRITICAL
    assert len(priorities) == 5


def test_run_queue_worker_starts_metrics_when_requested(mocker: MockerFixture) -> None:
    module = _module()
    mocker.patch.object(module, "parse_args", return_value=_args(metrics=True))
    _patch_runtime(mocker, module)
    exporter = mocker.patch.object(module, "ensure_metrics_exporter")

    assert module.main([]) == 0
    exporter.assert_called_once_with()


def test_run_queue_worker_exits_when_store_unhealthy(mocker: MockerFixture) -> None:
    module = _module()
    mocker.patch.object(module, "parse_args", return_value=_args())
    runtime = _patch_runtime(mocker, module, healthy=False)

    assert module.main([]) == 1
    runtime.serve.assert_not_called()
    runtime.worker.register.assert_not_called()


def test_run_queue_worker_exits_when_generator_fails_to_load(
    mocker: MockerFixture,
) -> None:
    module = _module()
    mocker.patch.object(module, "parse_args", return_value=_args())
    runtime = _patch_runtime(mocker, module)
    module.load_generator.side_effect = ImportError("no module named providers")

    assert module.main([]) == 1
    module.build_queue_context.assert_not_called()
    runtime.serve.assert_not_called()


def test_run_queue_worker_exits_after_store_loss(mocker: MockerFixture) -> None:
    module = _module()
    mocker.patch.object(module, "parse_args", return_value=_args())
    runtime = _patch_runtime(mocker, module)
    runtime.serve.side_effect = StoreConnectionError("zpopmin", "down")

    assert module.main([]) == 1


def test_parse_args_requires_generator() -> None:
    module = _module()

    with pytest.raises(SystemExit):
        module.parse_args([])

    args = module.parse_args(
        ["--generator", "pkg:factory", "--priority", "high", "--priority", "low"]
    )
    assert args.priorities == ["high", "low"]
    assert args.run_once is False


def test_load_generator_rejects_non_generators(mocker: MockerFixture) -> None:
    module = _module()
    mocker.patch.object(module.pkgutil, "resolve_name", return_value=lambda: object())

    with pytest.raises(TypeError):
        module.load_generator("pkg:factory")


def test_load_generator_calls_factory(mocker: MockerFixture) -> None:
    module = _module()

    class _Generator:
        def generate(self, *, model_id, prompt, request):
            raise NotImplementedError

    mocker.patch.object(module.pkgutil, "resolve_name", return_value=_Generator)

    assert isinstance(module.load_generator("pkg:factory"), _Generator)
