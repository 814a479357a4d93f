from __future__ import annotations
from typing import List

import pydantic

from pharmabill import errors
from pharmabill.models.client import Client
from pharmabill.storage.repo import CollectionKind, EntityRepository


class ClientService:
    def __init__(self, repo: EntityRepository):
        self.repo = repo

    def list_clients(self) -> List[Client]:
        return self.repo.load(CollectionKind.CLIENTS)  # type: ignore[return-value]

    def search(self, query: str) -> List[Client]:
        q = (query or "").strip()
        return [c for c in self.list_clients() if q.casefold() in c.name.casefold() or q in c.phone]

    def get_by_id(self, client_id: str) -> Client:
        for c in self.list_clients():
            if c.id == client_id:
                return c
        raise errors.NotFoundError(f"client {client_id} not found")

    def _validated(self, client: Client) -> Client:
        try:
            c = Client.model_validate(client.model_dump())
        except pydantic.ValidationError as e:
            raise errors.ValidationError(f"invalid client: {e}") from e
        if not c.name.strip():
            raise errors.ValidationError("client name is required")
        return c

    def add_client(self, client: Client) -> Client:
        c = self._validated(client)
        clients = self.list_clients()
        clients.append(c)
        self.repo.save(CollectionKind.CLIENTS, clients)
        return c

    def update_client(self, client: Client) -> Client:
        c = self._validated(client)
        clients = self.list_clients()
        for idx, existing in enumerate(clients):
            if existing.id == c.id:
                clients[idx] = c
                self.repo.save(CollectionKind.CLIENTS, clients)
                return c
        raise errors.NotFoundError(f"client {c.id} not found")

    def delete_client(self, client_id: str) -> bool:
        # les documents gardent le nom du client (copie), rien d'autre à nettoyer
        clients = self.list_clients()
        kept = [c for c in clients if c.id != client_id]
        if len(kept) == len(clients):
            return False
        self.repo.save(CollectionKind.CLIENTS, kept)
        return True
