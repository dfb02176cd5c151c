"""
Type-safe configuration for the flow compiler using Pydantic Settings.

Everything the compiler bakes into an emitted program (service URLs, timeouts,
retry bounds) is read from environment variables or a .env file, so the same
flow compiles against staging or production endpoints without code changes.

Usage:
    from shared.config import config

    seconds = config.default_response_wait_seconds
"""
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlowCompilerConfig(BaseSettings):
    """
    Central configuration for the flow compiler.

    Loaded from environment variables or .env file and validated at startup.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ============================================================================
    # Messaging endpoints called by emitted programs
    # ============================================================================

    message_send_url: str = Field(default="http://localhost:8080/whatsapp/send", description="Endpoint that sends a designer message node")
    message_send_invalid_url: str = Field(default="http://localhost:8080/whatsapp/send-invalid", description="Endpoint that sends the invalid-format notice on response retries")
    message_send_alert_url: str = Field(default="http://localhost:8080/whatsapp/send-alert", description="Endpoint that sends internal alert messages")
    session_clear_url: str = Field(default="http://localhost:8080/whatsapp/session-clear", description="Endpoint that clears an open conversation session")

    # ============================================================================
    # Helper services
    # ============================================================================

    functions_url: str = Field(default="http://localhost:8081", description="Base URL of the cloud functions (condition_split, condition_branch, utilities)")
    flow_service_url: str = Field(default="http://localhost:8082", description="Base URL of the flow service (api nodes, graphql save-data)")
    subflow_start_url: str = Field(default="http://localhost:8081/start_subflow", description="Endpoint that starts a compiled subflow execution")
    firestore_database: str = Field(default="flowflex", description="Document database holding subflow polling documents")

    # ============================================================================
    # Suspension, retry and polling bounds
    # ============================================================================

    callback_event_prefix: str = Field(default="T", description="Prefix prepended to the flow title to build the callback event source")
    default_response_wait_seconds: int = Field(default=7200, ge=1, description="Await timeout used when a prompt does not configure its own wait")
    response_retry_limit: int = Field(default=5, ge=1, description="Attempts allowed for a response-format check before falling to no-response")
    subflow_poll_interval_seconds: int = Field(default=30, ge=1, description="Sleep between subflow status polls")
    subflow_max_polls: int = Field(default=120, ge=1, description="Polls before a subflow call takes its timeout branch")
    default_loop_limit: int = Field(default=100, ge=1, description="Iteration bound used when a loop node has no limit")
    http_retry_max_attempts: int = Field(default=3, ge=1, description="Attempts for retried HTTP calls in emitted programs")
    http_retry_initial_delay: float = Field(default=1.0, gt=0, description="First backoff delay in seconds")
    http_retry_multiplier: float = Field(default=2.0, ge=1, description="Exponential backoff multiplier")

    # ============================================================================
    # Program sink
    # ============================================================================

    program_sink_url: Optional[str] = Field(default=None, description="Deployment endpoint that receives compiled programs")
    program_sink_token: Optional[str] = Field(default=None, description="Bearer token for the deployment endpoint")
    program_sink_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout for program submission")

    # ============================================================================
    # Computed Properties
    # ============================================================================

    @computed_field
    @property
    def condition_split_url(self) -> str:
        """Cloud function evaluating yes/no splits."""
        return f"{self.functions_url.rstrip('/')}/condition_split"

    @computed_field
    @property
    def condition_branch_url(self) -> str:
        """Cloud function evaluating labelled branches."""
        return f"{self.functions_url.rstrip('/')}/condition_branch"

    @property
    def is_sink_configured(self) -> bool:
        """Check if an HTTP program sink is configured."""
        return bool(self.program_sink_url)

# ============================================================================
# Global Config Instance
# ============================================================================

config = FlowCompilerConfig()
