"""
ConsultFlow
AI module — delivery phase execution.

Submodules:
    - agent_config: typed view of an agent's model configuration
    - completion_client: streaming HTTP client for the completion service
    - stream: incremental SSE frame decoder
    - orchestrator: phase execution lifecycle (running → completed | failed)
    - task_runner: background thread pool for executions
"""
