"""Database models (Data Objects) - map to database tables."""

from .history import HistoryConversationDO, HistoryMessageDO

__all__ = ["HistoryConversationDO", "HistoryMessageDO"]
