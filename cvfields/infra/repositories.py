"""
Repositories pour la gestion des utilisateurs.

Un utilisateur est persisté d'un bloc (enregistrement JSON camelCase, remplacement complet à
chaque sauvegarde). Deux implémentations: en mémoire (dev/tests) et Redis.
"""

import copy
import json
from typing import Any

import redis


class StoreError(RuntimeError):
    """Le dépôt n'a pas pu lire ou écrire un enregistrement."""


class InMemoryUserRepo:
    """Dépôt utilisateurs en mémoire (email indexée par scan simple)."""

    def __init__(self):
        """Initialise une base mémoire vide."""
        self._db: dict[str, dict[str, Any]] = {}

    def get(self, user_id: str) -> dict[str, Any] | None:
        """Retourne une copie de l'utilisateur `user_id`, ou None s'il est absent."""
        record = self._db.get(user_id)
        return copy.deepcopy(record) if record is not None else None

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        """Recherche un utilisateur par email."""
        found = next((u for u in self._db.values() if u.get("email") == email), None)
        return copy.deepcopy(found) if found is not None else None

    def save(self, user: dict[str, Any]) -> dict[str, Any]:
        """Sauvegarde (remplace) un utilisateur."""
        self._db[user["id"]] = copy.deepcopy(user)
        return user


class RedisUserRepo:
    """Dépôt utilisateurs via Redis (clé `user:{id}`) avec index email->id (hash)."""

    def __init__(self, url: str):
        """Crée un client Redis à partir de l'URL fournie."""
        self.client = redis.Redis.from_url(url, decode_responses=True)
        self.idx_key = "user:idx:email"

    def get(self, user_id: str) -> dict[str, Any] | None:
        """Charge et désérialise l'utilisateur `user:{id}`, si présent."""
        try:
            raw = self.client.get(f"user:{user_id}")
        except redis.RedisError as err:
            raise StoreError(f"user_load_failed:{user_id}") from err
        return json.loads(raw) if raw else None

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        """Recherche un utilisateur par email via l'index Redis."""
        try:
            user_id = self.client.hget(self.idx_key, email)
        except redis.RedisError as err:
            raise StoreError("user_lookup_failed") from err
        if not user_id:
            return None
        return self.get(user_id)

    def save(self, user: dict[str, Any]) -> dict[str, Any]:
        """Sauvegarde un utilisateur et met à jour l'index email."""
        key = f"user:{user['id']}"
        try:
            pipe = self.client.pipeline()
            pipe.set(key, json.dumps(user))
            if user.get("email"):
                pipe.hset(self.idx_key, user["email"], user["id"])
            pipe.execute()
        except redis.RedisError as err:
            raise StoreError(f"user_save_failed:{user['id']}") from err
        return user
