"""Workflow core package.

Architectural role:
    Holds the session data contracts, the error taxonomy, notification delivery
    and the workflow state machine that sits between the adapters (`vca.api`)
    and the staging/prompting/image subsystems.

Composition:
    - `types`: dataclass records and the workflow step enumeration.
    - `errors`: failure taxonomy shared by providers and the workflow.
    - `notifications`: transient user-facing notices.
    - `workflow`: the `WorkflowStateMachine`.
"""
