from __future__ import annotations
import json
import logging
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


log = logging.getLogger(__name__)

TEMPLATE_NAMES = ("aliexpress", "alibaba")
DEFAULT_TEMPLATE = "aliexpress"


class RewriteRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)
    template: Literal["aliexpress", "alibaba"] = DEFAULT_TEMPLATE
    cat_big: str = ""
    cat_mid: str = ""

    @classmethod
    def from_form(
        cls,
        ids_json: Optional[str],
        template: Optional[str] = None,
        cat_big: Optional[str] = None,
        cat_mid: Optional[str] = None,
    ) -> "RewriteRequest":
        """Build a request from the ``/api/bulk-rewrite`` form fields.

        ``ids`` is a JSON array of product gids; a missing array means no ids.
        Raises ``ValueError`` when ``ids`` is not a JSON array of strings.
        """
        try:
            ids = json.loads(ids_json or "[]")
        except ValueError as e:
            raise ValueError(f"ids is not valid JSON: {e}") from e
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise ValueError("ids must be a JSON array of product ids")
        return cls(
            ids=ids,
            template=(template or DEFAULT_TEMPLATE),
            cat_big=(cat_big or "").strip(),
            cat_mid=(cat_mid or "").strip(),
        )

    def to_form(self) -> Dict[str, str]:
        form = {"ids": json.dumps(self.ids), "template": self.template}
        if self.cat_big:
            form["cat_big"] = self.cat_big
        if self.cat_mid:
            form["cat_mid"] = self.cat_mid
        return form


class DispatcherBusy(RuntimeError):
    pass


class Dispatcher:
    """Runs one rewrite batch at a time for an operator session.

    A batch cannot be cancelled once dispatched; a second dispatch while the
    first is running is refused with :class:`DispatcherBusy`.
    """

    def __init__(self) -> None:
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def dispatch(self, request: RewriteRequest, runner: Callable[[RewriteRequest], Any]) -> Any:
        if self._busy:
            raise DispatcherBusy("a rewrite batch is already running")
        self._busy = True
        log.info("dispatch: %s product(s) template=%s", len(request.ids), request.template)
        try:
            return runner(request)
        finally:
            self._busy = False
