"""
Time-in-Status Analytics Engine

Reconstructs how long each Contributor Project spent in every status from
sparse milestone dates, and aggregates those timelines into dwell-time,
transition and bottleneck views for a dashboard.

To swap the record source:
    Implement loaders.base.RecordSource (``supported_fields`` and
    ``list_entities``) over the new backend. SalesforceSource reads the
    live REST API; ExportSource pages through workbook exports or any list
    of raw rows. The orchestrator and aggregators stay unchanged.

To connect to Streamlit/Dash:
    Run orchestrator.BatchOrchestrator(source, config).run(query) and pass
    the BatchResult to dashboard.get_overview / get_entity_timelines /
    get_bottlenecks / get_transitions, each of which returns plain dicts.

To add a milestone:
    Add an entry to config.MILESTONE_REGISTRY mapping the milestone name to
    its date field and status label. The field is requested automatically
    and dropped again if the source does not expose it.
"""
