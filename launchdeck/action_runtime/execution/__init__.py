"""Execution pipeline for the action runtime.

This package contains the core execution components:

- **variables**: Variable resolution (global + workspace + action -> substitution table)
- **expander**: Template expansion (action config + tool + variables -> Invocation)
- **launcher**: Invocation execution (spawn / open URL / delay, output capture)
- **tracker**: Run state machine and persistence
- **coordinator**: Workspace launch orchestration (fan-out -> started barrier -> summary)
- **retention**: Periodic pruning of old run history
"""
