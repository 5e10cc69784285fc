"""Opportunity documents."""

from __future__ import annotations

from ghist.errors import ParseError
from ghist.models import Opportunity, utc_now
from ghist.store.files import DocumentDir


class OpportunityStore:
    """Opportunities stored as ``opportunities/<id>.json``."""

    def __init__(self, docs: DocumentDir) -> None:
        self.docs = docs

    def _load(self, id: int) -> Opportunity:
        return self._from_doc(id, self.docs.read(id))

    def _from_doc(self, id: int, data: dict) -> Opportunity:
        try:
            return Opportunity.from_dict(data)
        except ValueError as exc:
            raise ParseError(self.docs.doc_path(id), str(exc)) from exc

    def create(self, name: str, notes: str = "") -> Opportunity:
        now = utc_now()
        with self.docs.allocate() as id:
            opp = Opportunity(id=id, name=name, notes=notes, created_at=now, updated_at=now)
            self.docs.write(id, opp.to_dict())
        return opp

    def get(self, id: int) -> Opportunity:
        return self._load(id)

    def list(self) -> list[Opportunity]:
        return [self._from_doc(id, data) for id, data in self.docs.read_all()]
