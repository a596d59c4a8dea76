from advisory_radar.models.alert_record import AlertRecord  # noqa: F401
from advisory_radar.models.source_registry_record import SourceRegistryRecord  # noqa: F401
from advisory_radar.models.run_log_record import RunLogRecord  # noqa: F401
