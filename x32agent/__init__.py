"""
X32 Agent - Keeps an X32 mixing console in sync with a rule pipeline.

Modules:
    values: Typed parameter values (int32, float32, opaque)
    osc: OSC codec, constants and statistics
    dispatch: Literal-address dispatcher with wildcard fan-out
    state: Thread-safe parameter state store
    transport: UDP transport and receive loop
    config: Pipeline YAML loading and validation
    engine: Watch-react engine, enforcer, liveness probe and main cycle
    cli: Command-line entry point
"""

__version__ = "0.1.0"
