"""
Workflow node executors
"""

from .ai_node import AINodeExecutor
from .base import NodeExecutor, TriggerPassthroughExecutor, parse_node_data
from .create_task import CreateTaskExecutor
from .registry import ExecutorRegistry, build_executor_registry, get_executor
from .send_email import SendEmailExecutor
from .send_sms import SendSmsExecutor
from .update_contact import UpdateContactExecutor

__all__ = [
    "AINodeExecutor",
    "NodeExecutor",
    "TriggerPassthroughExecutor",
    "parse_node_data",
    "CreateTaskExecutor",
    "ExecutorRegistry",
    "build_executor_registry",
    "get_executor",
    "SendEmailExecutor",
    "SendSmsExecutor",
    "UpdateContactExecutor",
]
