"""LLM interaction logger for debugging generation and relationship calls."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


class LLMLogger:
    """Logger for backend calls with detailed request/response tracking."""

    def __init__(self, log_dir: str = "logs"):
        """Initialize LLM logger.

        Args:
            log_dir: Directory to store log files
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("llm_interactions")
        self.logger.setLevel(logging.DEBUG)
        # Detailed JSON goes to the file only; the root logger gets the summary.
        self.logger.propagate = False

        # Prevent duplicate handlers
        if not self.logger.handlers:
            log_file = self.log_dir / f"llm_interactions_{datetime.now().strftime('%Y%m%d')}.log"
            fh = logging.FileHandler(log_file, encoding='utf-8')
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(fh)

        self.summary = logging.getLogger(__name__)

    def log_interaction(
        self,
        agent_id: str,
        purpose: str,
        messages_sent: List[Any],
        response_text: str,
        model: str,
        extra_params: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log a complete backend interaction.

        Args:
            agent_id: Agent on whose behalf the call was made
            purpose: "generate" or "relationship"
            messages_sent: LangChain messages sent to the model
            response_text: Text extracted from the response
            model: Model name used
            extra_params: Additional parameters (temperature, stop, ...)
        """
        timestamp = datetime.now().isoformat()

        messages_dict = []
        for msg in messages_sent:
            messages_dict.append({
                "type": msg.__class__.__name__,
                "content": msg.content,
            })

        log_entry = {
            "timestamp": timestamp,
            "agent_id": agent_id,
            "purpose": purpose,
            "model": model,
            "request": {
                "message_count": len(messages_sent),
                "messages": messages_dict
            },
            "response": response_text,
        }
        if extra_params:
            log_entry["extra_params"] = extra_params

        separator = "=" * 80
        self.logger.debug(f"\n{separator}")
        self.logger.debug(f"LLM INTERACTION @ {timestamp}")
        self.logger.debug(separator)
        self.logger.debug(json.dumps(log_entry, ensure_ascii=False, indent=2, default=str))
        self.logger.debug(f"{separator}\n")

        self.summary.debug(
            f"LLM Call | Agent: {agent_id} | {purpose} | "
            f"Sent: {len(messages_sent)} msgs | "
            f"Received: {len(response_text or '')} chars"
        )

    def log_error(self, agent_id: str, error: Exception, context: str = "") -> None:
        """Log a failed backend interaction."""
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "type": "ERROR",
            "agent_id": agent_id,
            "error": {
                "type": error.__class__.__name__,
                "message": str(error),
                "context": context
            }
        }
        self.logger.error(json.dumps(log_entry, ensure_ascii=False, indent=2))


# Global logger instance
_llm_logger = None


def get_llm_logger(log_dir: str = "logs") -> LLMLogger:
    """Get or create the global LLM logger instance."""
    global _llm_logger
    if _llm_logger is None:
        _llm_logger = LLMLogger(log_dir)
    return _llm_logger
