from dealdesk.models.sources import (  # noqa: F401
    CanonicalCitation,
    ConversationSourceRef,
    ToolContext,
    normalize_file_path,
)
from dealdesk.models.deal import (  # noqa: F401
    ActivityType,
    Deal,
    DealActivity,
    DealStage,
    PipelineAnalytics,
    StageTotals,
)
