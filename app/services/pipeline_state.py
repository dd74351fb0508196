from enum import Enum


class PipelineStage(str, Enum):
    RECEIVED = "received"
    ACKNOWLEDGED = "acknowledged"
    TOKEN_ACQUIRED = "token_acquired"
    CONTENT_RESOLVED = "content_resolved"
    CLASSIFIED = "classified"
    SCHEDULED = "scheduled"
    REPLIED = "replied"
    DONE = "done"


VALID_TRANSITIONS = {
    PipelineStage.RECEIVED: [PipelineStage.ACKNOWLEDGED],
    PipelineStage.ACKNOWLEDGED: [PipelineStage.TOKEN_ACQUIRED, PipelineStage.DONE],
    PipelineStage.TOKEN_ACQUIRED: [PipelineStage.CONTENT_RESOLVED, PipelineStage.DONE],
    PipelineStage.CONTENT_RESOLVED: [PipelineStage.CLASSIFIED, PipelineStage.DONE],
    PipelineStage.CLASSIFIED: [PipelineStage.SCHEDULED, PipelineStage.REPLIED, PipelineStage.DONE],
    PipelineStage.SCHEDULED: [PipelineStage.REPLIED, PipelineStage.DONE],
    PipelineStage.REPLIED: [PipelineStage.DONE],
    PipelineStage.DONE: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_stage: PipelineStage, to_stage: PipelineStage):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(f"Invalid transition: {from_stage.value} -> {to_stage.value}")


def can_transition(from_stage: PipelineStage, to_stage: PipelineStage) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_stage, [])
    return to_stage in allowed


def transition(from_stage: PipelineStage, to_stage: PipelineStage) -> PipelineStage:
    """Perform stage transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_stage, to_stage):
        raise InvalidTransitionError(from_stage, to_stage)
    return to_stage


def finish(current_stage: PipelineStage) -> PipelineStage:
    """Terminate the run, from any non-terminal stage."""
    return transition(current_stage, PipelineStage.DONE)
