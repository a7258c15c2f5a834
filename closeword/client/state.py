"""Client-side room cache built from a snapshot plus realtime events."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional

logger = logging.getLogger(__name__)

_STATUS_ORDER = {"waiting": 0, "playing": 1, "finished": 2}


class NicknameCache:
    """Bounded user_id -> nickname map; least recently used entries go first."""

    def __init__(self, maxsize: int = 256) -> None:
        self.maxsize = maxsize
        self._entries: OrderedDict[str, str] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._entries

    def get(self, user_id: str, default: Optional[str] = None) -> Optional[str]:
        if user_id not in self._entries:
            return default
        self._entries.move_to_end(user_id)
        return self._entries[user_id]

    def put(self, user_id: str, nickname: str) -> None:
        self._entries[user_id] = nickname
        self._entries.move_to_end(user_id)
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)


class RoomState:
    """Local view of one room for one player.

    Merges are idempotent: the same guess, player or room update can arrive
    any number of times, in the snapshot and on the stream, and the state
    only ever moves forward. Room status never goes back, a revealed guess
    stays revealed and a known word is never forgotten.
    """

    def __init__(self, room_id: str, user_id: str, nickname_cache_size: int = 256) -> None:
        self.room_id = str(room_id)
        self.user_id = user_id
        self.room: Optional[dict] = None
        self.players: dict[str, dict] = {}
        self.guesses: dict[str, dict] = {}
        self.nicknames = NicknameCache(nickname_cache_size)
        self._resync_requested = False

    # ----- merging -----

    def load_snapshot(self, snapshot: dict) -> None:
        """Merge a full snapshot; it never undoes newer local knowledge."""
        if snapshot.get("room"):
            self.merge_room(snapshot["room"])
        for player in snapshot.get("players", []):
            self.merge_player(player)
        for guess in snapshot.get("guesses", []):
            self.merge_guess(guess)
        # A fresh snapshot settles whatever looked inconsistent before
        self._resync_requested = False

    def apply_event(self, event: dict) -> bool:
        """Merge one realtime event. Returns True when local state changed."""
        if str(event.get("room_id")) != self.room_id:
            return False

        event_type = event.get("type")
        data = event.get("data") or {}
        if event_type in ("guess_inserted", "guess_updated"):
            changed = self.merge_guess(data)
        elif event_type == "room_updated":
            changed = self.merge_room(data)
        elif event_type == "player_joined":
            changed = self.merge_player(data)
        else:
            logger.debug(f"Ignoring unknown room event {event_type}")
            return False

        if changed and self.is_ambiguous:
            self._resync_requested = True
        return changed

    def merge_guess(self, data: dict) -> bool:
        guess_id = str(data["guess_id"])
        existing = self.guesses.get(guess_id)
        if existing is None:
            self.guesses[guess_id] = dict(data)
            return True

        changed = False
        if data.get("is_revealed") and not existing.get("is_revealed"):
            existing["is_revealed"] = True
            changed = True
        if data.get("word") and not existing.get("word"):
            existing["word"] = data["word"]
            changed = True
        return changed

    def merge_room(self, data: dict) -> bool:
        if self.room is None:
            self.room = dict(data)
            return True

        current = _STATUS_ORDER.get(self.room.get("status"), 0)
        incoming = _STATUS_ORDER.get(data.get("status"), 0)
        if incoming < current:
            return False
        if data == self.room:
            return False

        merged = dict(self.room)
        for key, value in data.items():
            if value is not None:
                merged[key] = value
        if merged == self.room:
            return False

        if incoming > current and data.get("status") == "finished":
            # Other players' words become visible; only a snapshot has them
            self._resync_requested = True
        self.room = merged
        return True

    def merge_player(self, data: dict) -> bool:
        user_id = data["user_id"]
        self.nicknames.put(user_id, data["nickname"])
        existing = self.players.get(user_id)
        if existing is not None and existing.get("is_host") == data.get("is_host"):
            return False
        self.players[user_id] = dict(data)
        return True

    # ----- derived values -----

    @property
    def status(self) -> Optional[str]:
        return self.room.get("status") if self.room else None

    @property
    def is_finished(self) -> bool:
        return self.status == "finished"

    @property
    def my_guesses(self) -> list[dict]:
        return sorted(
            (g for g in self.guesses.values() if g["user_id"] == self.user_id),
            key=lambda g: g["rank"],
        )

    @property
    def best_rank(self) -> Optional[int]:
        ranks = [g["rank"] for g in self.guesses.values() if g["user_id"] == self.user_id]
        return min(ranks) if ranks else None

    @property
    def leaderboard(self) -> list[dict]:
        """Best rank per player, closest first."""
        best: dict[str, int] = {}
        for guess in self.guesses.values():
            user_id = guess["user_id"]
            if user_id not in best or guess["rank"] < best[user_id]:
                best[user_id] = guess["rank"]

        return [
            {"user_id": user_id, "nickname": self.nickname(user_id), "best_rank": rank}
            for user_id, rank in sorted(best.items(), key=lambda item: (item[1], item[0]))
        ]

    def nickname(self, user_id: str) -> str:
        return self.nicknames.get(user_id) or "Player"

    @property
    def is_ambiguous(self) -> bool:
        """Local state mixes events in an order the server could not have produced."""
        if self.room is None:
            return False
        has_exact = any(g["rank"] == 1 for g in self.guesses.values())
        if has_exact and not self.is_finished:
            return True
        winner_id = self.room.get("winner_id")
        if self.is_finished and winner_id:
            return not any(
                g["rank"] == 1 and g["user_id"] == winner_id for g in self.guesses.values()
            )
        return False

    def take_resync_request(self) -> bool:
        requested = self._resync_requested
        self._resync_requested = False
        return requested
