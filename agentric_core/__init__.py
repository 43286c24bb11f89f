"""
AgentricAI University - Orchestration Core

Central coordinator for the AgentricAI University agent ecosystem. Registers
agents, routes every inter-agent message through the Guardian's ethical review,
records each routing attempt with the Black Box, and escalates emergencies.

Modules:
- config: Centralized configuration (environment-driven) and agent registry loading
- exceptions: Structured exception hierarchy
- events: Typed system event channel
- telemetry: Logging setup and structured telemetry sink
- integrity: HMAC hash-chained audit entries
- agents: Agent records, implementation contract, built-in agents
- registry: Agent registry (write-once during initialization)
- envelope: Message envelopes, priority rules, routing results
- gate: Ethical review gate (fail-closed)
- audit: Audit log over the Black Box
- router: Envelope routing pipeline
- classifier: Department classification
- emergency: Emergency notification fan-out
- health: Periodic health snapshots
- metrics: Prometheus metrics export
- orchestrator: Lifecycle state machine and student/admin flows
- server: HTTP adapter and CLI
"""

__version__ = "1.0.0"
__author__ = "AgentricAI Development Team"
__description__ = "Agent orchestration and message-routing core for AgentricAI University"
