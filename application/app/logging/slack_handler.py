import logging
from datetime import datetime, timezone

import requests

from app.config.settings import AuthConfigs
configs = AuthConfigs()


class SlackErrorHandler(logging.Handler):
    """Sends ERROR and CRITICAL logs to Slack"""

    def __init__(self, webhook: str | None = None, environment: str | None = None):
        super().__init__(level=logging.ERROR)
        self.webhook = webhook if webhook is not None else configs.SLACK_WEBHOOK_URL
        self.environment = (environment or configs.APPLICATION_ENVIRONMENT).upper()
        self.enabled = bool(self.webhook)

    def build_text(self, record) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        lines = [
            f":mag: {self.environment}-MONITOR wasil-auth-service. Please investigate the issue.",
            "",
            f"- :clock1: Timestamp: {ts}",
            f"- :triangular_flag_on_post: Level: **{record.levelname}**",
            f"- :warning: Logger: {record.name}",
            f"- :file_folder: Module: {getattr(record, 'module', '')}",
            f"- :pushpin: Function: {getattr(record, 'funcName', '')}",
            f"- :straight_ruler: Line Number: {getattr(record, 'lineno', '')}",
            f"- :id: Request: {getattr(record, 'request_id', '')}",
            "",
            "```" + record.getMessage() + "```",
        ]
        return "\n".join(lines)

    def emit(self, record):
        if not self.enabled:
            return
        try:
            requests.post(self.webhook, json={"text": self.build_text(record)}, timeout=2)
        except requests.RequestException:
            # alerting must never break the request that logged the error
            self.handleError(record)


# Shared instance for all application loggers
slack_handler = SlackErrorHandler()
