from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import BriefingContent, SendResult


class EmailGateway(ABC):
    name: str

    @abstractmethod
    def send(self, to: str, content: BriefingContent) -> SendResult:
        raise NotImplementedError
