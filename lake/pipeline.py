"""
Pipeline - runs the Asana stages for one project in a fixed order.

    collect/extract: project, section, task, subtask, tag, story, user
    convert:         project, task, story, user

Each stage is a StageDescriptor; callers may pick a subset by name but never
reorder. The first failing stage stops the run.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from engine.asana_client import AsanaClient
from lake.collectors import asana as collectors
from lake.context import CollectionCancelled, PipelineContext
from lake.converters import asana as converters
from lake.extractors import asana as extractors
from lake.models import PipelineOptions
from lake.observability import RunContext, get_run_id
from lake.store import LakeStore, get_store

logger = logging.getLogger(__name__)

DOMAIN_TICKET = "TICKET"
DOMAIN_CROSS = "CROSS"


@dataclass(frozen=True)
class StageDescriptor:
    name: str
    entry_point: Callable[[PipelineContext], int]
    enabled_by_default: bool
    description: str
    domain_types: tuple[str, ...] = (DOMAIN_TICKET,)
    needs_client: bool = False


SUBTASK_METAS: tuple[StageDescriptor, ...] = (
    StageDescriptor(
        name="collect_project",
        entry_point=collectors.collect_project,
        enabled_by_default=True,
        description="Collect project from the Asana API into _raw_asana_projects",
        needs_client=True,
    ),
    StageDescriptor(
        name="extract_project",
        entry_point=extractors.extract_project,
        enabled_by_default=True,
        description="Extract raw projects into _tool_asana_projects",
    ),
    StageDescriptor(
        name="collect_section",
        entry_point=collectors.collect_section,
        enabled_by_default=True,
        description="Collect project sections into _raw_asana_sections",
        needs_client=True,
    ),
    StageDescriptor(
        name="extract_section",
        entry_point=extractors.extract_section,
        enabled_by_default=True,
        description="Extract raw sections into _tool_asana_sections",
    ),
    StageDescriptor(
        name="collect_task",
        entry_point=collectors.collect_task,
        enabled_by_default=True,
        description="Collect project tasks into _raw_asana_tasks",
        needs_client=True,
    ),
    StageDescriptor(
        name="extract_task",
        entry_point=extractors.extract_task,
        enabled_by_default=True,
        description="Extract raw tasks into _tool_asana_tasks",
    ),
    StageDescriptor(
        name="collect_subtask",
        entry_point=collectors.collect_subtask,
        enabled_by_default=True,
        description="Collect subtasks of tasks with num_subtasks > 0",
        needs_client=True,
    ),
    StageDescriptor(
        name="extract_subtask",
        entry_point=extractors.extract_subtask,
        enabled_by_default=True,
        description="Extract raw subtasks into _tool_asana_tasks",
    ),
    StageDescriptor(
        name="collect_tag",
        entry_point=collectors.collect_tag,
        enabled_by_default=True,
        description="Collect tags of every project task",
        needs_client=True,
    ),
    StageDescriptor(
        name="extract_tag",
        entry_point=extractors.extract_tag,
        enabled_by_default=True,
        description="Extract raw tags into _tool_asana_tags and _tool_asana_task_tags",
    ),
    StageDescriptor(
        name="collect_story",
        entry_point=collectors.collect_story,
        enabled_by_default=True,
        description="Collect stories of every project task",
        needs_client=True,
    ),
    StageDescriptor(
        name="extract_story",
        entry_point=extractors.extract_story,
        enabled_by_default=True,
        description="Extract raw stories into _tool_asana_stories",
    ),
    StageDescriptor(
        name="collect_user",
        entry_point=collectors.collect_user,
        enabled_by_default=True,
        description="Collect project members into _raw_asana_users",
        domain_types=(DOMAIN_CROSS,),
        needs_client=True,
    ),
    StageDescriptor(
        name="extract_user",
        entry_point=extractors.extract_user,
        enabled_by_default=True,
        description="Extract raw users into _tool_asana_users",
        domain_types=(DOMAIN_CROSS,),
    ),
    StageDescriptor(
        name="convert_project",
        entry_point=converters.convert_project,
        enabled_by_default=True,
        description="Convert _tool_asana_projects into boards",
    ),
    StageDescriptor(
        name="convert_task",
        entry_point=converters.convert_task,
        enabled_by_default=True,
        description="Convert _tool_asana_tasks into issues, board_issues and issue_assignees",
    ),
    StageDescriptor(
        name="convert_story",
        entry_point=converters.convert_story,
        enabled_by_default=True,
        description="Convert comment stories into issue_comments",
    ),
    StageDescriptor(
        name="convert_user",
        entry_point=converters.convert_user,
        enabled_by_default=True,
        description="Convert _tool_asana_users into accounts",
        domain_types=(DOMAIN_CROSS,),
    ),
)

STAGE_NAMES = tuple(stage.name for stage in SUBTASK_METAS)


@dataclass
class StageResult:
    name: str
    status: str  # ok | failed | cancelled
    rows: int = 0
    duration_ms: float = 0.0
    error: str | None = None


@dataclass
class PipelineResult:
    connection_id: int
    project_id: str
    run_id: str = ""
    stages: list[StageResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(stage.status == "ok" for stage in self.stages)

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "project_id": self.project_id,
            "run_id": self.run_id,
            "success": self.success,
            "stages": [stage.__dict__.copy() for stage in self.stages],
        }


class PipelineError(Exception):
    """A stage failed or the run was cancelled. Carries the partial result."""

    def __init__(self, stage: str, result: PipelineResult, cancelled: bool = False):
        super().__init__(f"Stage {stage} {'cancelled' if cancelled else 'failed'}")
        self.stage = stage
        self.result = result
        self.cancelled = cancelled


def select_stages(names: list[str] | None = None) -> list[StageDescriptor]:
    """Stages to run, always in pipeline order."""
    if not names:
        return [stage for stage in SUBTASK_METAS if stage.enabled_by_default]
    unknown = set(names) - set(STAGE_NAMES)
    if unknown:
        raise ValueError(f"Unknown stages: {', '.join(sorted(unknown))}")
    wanted = set(names)
    return [stage for stage in SUBTASK_METAS if stage.name in wanted]


def run_pipeline(
    options: PipelineOptions,
    store: LakeStore | None = None,
    client=None,
    stages: list[str] | None = None,
    cancel_event: threading.Event | None = None,
) -> PipelineResult:
    """
    Run the selected stages for one project.

    Raises PipelineError (chained to the stage's exception) on the first failure.
    """
    options.validate()
    selected = select_stages(stages)

    if client is None and any(stage.needs_client for stage in selected):
        client = AsanaClient.for_connection(options.connection_id)

    ctx = PipelineContext(
        options=options,
        store=store or get_store(),
        client=client,
        cancel_event=cancel_event or threading.Event(),
    )

    with RunContext():
        result = PipelineResult(options.connection_id, options.project_id, run_id=get_run_id())
        logger.info(
            f"Pipeline start: connection={options.connection_id} project={options.project_id} "
            f"stages={len(selected)}"
        )
        for stage in selected:
            start = time.monotonic()
            logger.info(f"Stage {stage.name} started", extra={"stage": stage.name})
            try:
                rows = stage.entry_point(ctx)
            except CollectionCancelled as e:
                result.stages.append(
                    StageResult(stage.name, "cancelled", duration_ms=_elapsed(start), error=str(e))
                )
                logger.warning(f"Stage {stage.name} cancelled", extra={"stage": stage.name})
                raise PipelineError(stage.name, result, cancelled=True) from e
            except Exception as e:
                result.stages.append(
                    StageResult(stage.name, "failed", duration_ms=_elapsed(start), error=str(e))
                )
                logger.exception(f"Stage {stage.name} failed", extra={"stage": stage.name})
                raise PipelineError(stage.name, result) from e

            result.stages.append(StageResult(stage.name, "ok", rows=rows, duration_ms=_elapsed(start)))
            logger.info(
                f"Stage {stage.name} finished: {rows} rows in {_elapsed(start):.0f}ms",
                extra={"stage": stage.name},
            )

        logger.info(f"Pipeline finished for project {options.project_id}")
        return result


def _elapsed(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 1)
