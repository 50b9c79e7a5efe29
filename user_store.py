"""
User records kept in a single JSON document, alongside verification codes.

Each user embeds their practice progress: the flat attempt list (kept for
older clients) and the serialized ProgressTree that drives the progress bars.
Both are updated in the same write.
"""
import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from crypto_utils import FieldCipher, keyed_digest
from errors import ConflictError, InvalidInputError, NotFoundError
from json_store import JsonFileStore
from logger import practice_logger
from progress_tree import ProgressTree, is_valid_snapshot, restore_progress_tree
from topics import PaperClassifier

MAX_NOTES_LENGTH = 500
DB_VERSION = "1.0.0"
CONSENT_VERSION = "1.0"
DUPLICATE_USER = "User already exists with this email"

ATTEMPT_META_FIELDS = (
    "questionName", "parentTopic", "relatedTopics", "difficulty", "paper", "year", "questionType",
)
FAVOURITE_FIELDS = (
    "questionName", "parentTopic", "difficulty", "paper", "year", "questionType",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_database() -> dict:
    return {
        "users": [],
        "sessions": [],
        "verificationCodes": [],
        "metadata": {"created": utc_now().isoformat(), "version": DB_VERSION},
    }


def _trim_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    return str(notes)[:MAX_NOTES_LENGTH]


class UserStore:

    def __init__(
        self,
        store_path: str,
        encryption_key: str,
        classifier: Optional[PaperClassifier] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.cipher = FieldCipher(encryption_key)
        self.digest_key = encryption_key
        self.classifier = classifier or PaperClassifier.default_classifier()
        self.clock = clock
        self.store = JsonFileStore(store_path, new_database, migrate=self._migrate)

    # --- Storage helpers ---

    def _migrate(self, db: dict) -> bool:
        """Bring older documents up to date: attempts list, progress tree, favourites."""
        changed = False
        for key in ("users", "sessions", "verificationCodes"):
            if not isinstance(db.get(key), list):
                db[key] = []
                changed = True
        for user in db["users"]:
            progress = user.get("progress")
            if not isinstance(progress, dict) or not isinstance(progress.get("attempts"), list):
                user["progress"] = {**(progress if isinstance(progress, dict) else {}), "attempts": []}
                changed = True
            if not is_valid_snapshot(user["progress"].get("progressTree")):
                tree = ProgressTree.from_attempts(user["progress"]["attempts"], classifier=self.classifier)
                user["progress"]["progressTree"] = tree.to_json()
                changed = True
            if not isinstance(user.get("favourites"), list):
                user["favourites"] = []
                changed = True
        return changed

    def _now(self) -> str:
        return self.clock().isoformat()

    @staticmethod
    def _find(db: dict, user_id: str) -> Optional[dict]:
        return next((u for u in db["users"] if u.get("id") == user_id), None)

    def _require(self, db: dict, user_id: str) -> dict:
        user = self._find(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # --- Email privacy ---

    def email_digest(self, email: str) -> str:
        return keyed_digest(self.digest_key, email.strip().lower())

    def encrypt_email(self, email: str) -> str:
        return self.cipher.encrypt(email.strip().lower())

    def decrypt_email(self, encrypted: str) -> str:
        return self.cipher.decrypt(encrypted)

    def public_profile(self, user: dict) -> dict:
        return {
            "id": user["id"],
            "email": self.decrypt_email(user["email"]),
            "name": user.get("name", ""),
            "avatar": user.get("avatar", ""),
            "emailVerified": user.get("emailVerified", False),
            "preferences": user.get("preferences", {}),
            "stats": user.get("stats", {}),
        }

    # --- Users ---

    def create_user(
        self,
        email: str,
        name: str = "",
        provider: str = "email",
        email_verified: bool = False,
        marketing_consent: bool = False,
        password_hash: Optional[str] = None,
        avatar: str = "",
        role: str = "user",
    ) -> dict:
        now = self._now()
        user = {
            "id": str(uuid.uuid4()),
            "email": self.encrypt_email(email),
            "emailDigest": self.email_digest(email),
            "name": name or "",
            "avatar": avatar or "",
            "provider": provider,
            "role": role,
            "passwordHash": password_hash,
            "emailVerified": email_verified,
            "consentDate": now,
            "consentVersion": CONSENT_VERSION,
            "dataProcessingConsent": True,
            "marketingConsent": marketing_consent,
            "createdAt": now,
            "updatedAt": now,
            "lastLoginAt": None,
            "preferences": {"theme": "light", "notifications": True, "practiceReminders": False},
            "stats": {"questionsAnswered": 0, "correctAnswers": 0, "topicsStudied": [], "lastPracticeDate": None},
            "progress": {"attempts": [], "progressTree": ProgressTree(classifier=self.classifier).to_json()},
            "favourites": [],
        }

        def _create(db: dict) -> dict:
            if any(u.get("emailDigest") == user["emailDigest"] for u in db["users"]):
                raise ConflictError(DUPLICATE_USER)
            db["users"].append(user)
            return copy.deepcopy(user)

        created = self.store.update(_create)
        practice_logger.info(f"Created {provider} user {created['id']}")
        return created

    def find_user_by_id(self, user_id: str) -> Optional[dict]:
        db = self.store.read()
        return self._find(db, user_id)

    def find_user_by_email(self, email: str) -> Optional[dict]:
        digest = self.email_digest(email)
        db = self.store.read()
        return next((u for u in db["users"] if u.get("emailDigest") == digest), None)

    def update_user(self, user_id: str, updates: dict) -> dict:
        def _update(db: dict) -> dict:
            user = self._require(db, user_id)
            user.update(updates)
            user["updatedAt"] = self._now()
            return copy.deepcopy(user)

        return self.store.update(_update)

    def update_last_login(self, user_id: str) -> dict:
        return self.update_user(user_id, {"lastLoginAt": self._now()})

    def update_consent(self, user_id: str, marketing: bool, version: Optional[str] = None) -> dict:
        return self.update_user(user_id, {
            "marketingConsent": marketing,
            "consentDate": self._now(),
            "consentVersion": version or CONSENT_VERSION,
        })

    def set_password_hash(self, user_id: str, password_hash: str) -> dict:
        return self.update_user(user_id, {"passwordHash": password_hash})

    # --- GDPR ---

    def export_user_data(self, user_id: str) -> dict:
        user = self.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        exported = {k: v for k, v in user.items() if k not in ("passwordHash", "emailDigest")}
        exported["email"] = self.decrypt_email(user["email"])
        exported["exportDate"] = self._now()
        exported["dataVersion"] = "1.0"
        return exported

    def delete_user_data(self, user_id: str) -> bool:
        def _delete(db: dict) -> bool:
            before = len(db["users"])
            db["users"] = [u for u in db["users"] if u.get("id") != user_id]
            db["sessions"] = [s for s in db["sessions"] if s.get("userId") != user_id]
            return len(db["users"]) < before

        deleted = self.store.update(_delete)
        if deleted:
            practice_logger.info(f"Deleted all data for user {user_id}")
        return deleted

    def get_users_for_retention(self, retention_days: int) -> List[dict]:
        """Users whose last activity is older than the retention window."""
        cutoff = self.clock() - timedelta(days=retention_days)
        stale = []
        for user in self.store.read()["users"]:
            last_activity = user.get("lastLoginAt") or user.get("createdAt")
            try:
                seen = datetime.fromisoformat(last_activity)
            except (TypeError, ValueError):
                continue
            if seen.tzinfo is None:
                seen = seen.replace(tzinfo=timezone.utc)
            if seen < cutoff:
                stale.append(user)
        return stale

    # --- Progress ---

    def _stored_tree(self, progress: dict) -> Optional[ProgressTree]:
        if is_valid_snapshot(progress.get("progressTree")):
            return restore_progress_tree(progress["progressTree"], classifier=self.classifier)
        return None

    def _tree_for(self, user: dict) -> ProgressTree:
        # A missing or damaged snapshot is rebuilt from the attempt list
        progress = user.setdefault("progress", {"attempts": []})
        tree = self._stored_tree(progress)
        if tree is None:
            tree = ProgressTree.from_attempts(progress.get("attempts", []), classifier=self.classifier)
        return tree

    def add_or_update_attempt(
        self,
        user_id: str,
        question_id: str,
        time_taken_seconds=None,
        notes: Optional[str] = None,
        **question_meta,
    ) -> Tuple[dict, ProgressTree]:
        """
        Record a practice submission. The first submission for a question
        creates the attempt; later ones refresh lastUpdatedAt and merge the
        supplied fields. completedAt never changes once set.
        """
        if not question_id:
            raise InvalidInputError("questionId is required")
        notes = _trim_notes(notes)
        meta = {k: v for k, v in question_meta.items() if k in ATTEMPT_META_FIELDS and v is not None}

        def _record(db: dict) -> Tuple[dict, ProgressTree]:
            user = self._require(db, user_id)
            progress = user.setdefault("progress", {})
            attempts = progress.setdefault("attempts", [])
            tree = self._tree_for(user)
            now = self._now()

            existing = next((a for a in attempts if a.get("questionId") == question_id), None)
            if existing is not None:
                existing["lastUpdatedAt"] = now
                if time_taken_seconds is not None:
                    existing["timeTakenSeconds"] = time_taken_seconds
                if notes is not None:
                    existing["notes"] = notes
                existing.update(meta)
                tree.add_attempt(
                    question_id,
                    time_taken_seconds=time_taken_seconds,
                    notes=notes,
                    completed_at=existing.get("completedAt") or existing.get("lastUpdatedAt"),
                )
                attempt = existing
            else:
                attempt = {
                    "questionId": question_id,
                    "completedAt": now,
                    "lastUpdatedAt": now,
                    "timeTakenSeconds": time_taken_seconds,
                    "notes": notes or "",
                    **meta,
                }
                attempts.append(attempt)
                stats = user.setdefault("stats", {})
                stats["questionsAnswered"] = stats.get("questionsAnswered", 0) + 1
                stats["lastPracticeDate"] = now
                topic = meta.get("parentTopic")
                if topic and topic not in stats.setdefault("topicsStudied", []):
                    stats["topicsStudied"].append(topic)
                tree.add_attempt(question_id, time_taken_seconds=time_taken_seconds, notes=notes, completed_at=now)

            user["updatedAt"] = now
            progress["progressTree"] = tree.to_json()
            return copy.deepcopy(attempt), tree

        return self.store.update(_record)

    def get_attempts(self, user_id: str, topic: Optional[str] = None,
                     limit: Optional[int] = None, offset: int = 0) -> List[dict]:
        """Attempts for a user, most recently updated first."""
        user = self.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        attempts = list(user.get("progress", {}).get("attempts", []))
        if topic:
            attempts = [a for a in attempts if a.get("parentTopic") == topic]
        attempts.sort(key=lambda a: a.get("lastUpdatedAt") or a.get("completedAt") or "", reverse=True)
        attempts = attempts[max(offset, 0):]
        if limit is not None:
            attempts = attempts[:max(limit, 0)]
        return attempts

    def get_attempt(self, user_id: str, question_id: str) -> Optional[dict]:
        user = self.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        attempts = user.get("progress", {}).get("attempts", [])
        return next((a for a in attempts if a.get("questionId") == question_id), None)

    def update_attempt_notes(self, user_id: str, question_id: str, notes: str) -> dict:
        notes = _trim_notes(notes) or ""

        def _update(db: dict) -> dict:
            user = self._require(db, user_id)
            attempts = user.get("progress", {}).get("attempts", [])
            attempt = next((a for a in attempts if a.get("questionId") == question_id), None)
            if attempt is None:
                raise NotFoundError("Attempt not found")
            attempt["notes"] = notes
            attempt["lastUpdatedAt"] = self._now()
            tree = self._tree_for(user)
            tree.add_attempt(question_id, notes=notes)
            user["progress"]["progressTree"] = tree.to_json()
            return copy.deepcopy(attempt)

        return self.store.update(_update)

    def get_attempt_stats(self, user_id: str) -> dict:
        attempts = self.get_attempts(user_id)
        times = [a["timeTakenSeconds"] for a in attempts if a.get("timeTakenSeconds") is not None]

        def _count(field: str, value: str) -> int:
            return sum(1 for a in attempts if a.get(field) == value)

        return {
            "totalAttempts": len(attempts),
            "topicsCount": len({a.get("parentTopic") for a in attempts if a.get("parentTopic")}),
            "avgTimeSeconds": round(sum(times) / len(times), 1) if times else None,
            "easyCount": _count("difficulty", "easy"),
            "mediumCount": _count("difficulty", "medium"),
            "hardCount": _count("difficulty", "hard"),
            "veryHardCount": _count("difficulty", "very hard"),
            "stateCount": _count("questionType", "state"),
            "customCount": _count("questionType", "custom"),
        }

    def has_completed(self, user_id: str, question_id: str) -> bool:
        user = self.find_user_by_id(user_id)
        if user is None:
            return False
        progress = user.get("progress", {})
        tree = self._stored_tree(progress)
        if tree is not None and tree.has(question_id):
            return True
        return any(a.get("questionId") == question_id for a in progress.get("attempts", []))

    def get_progress_tree(self, user_id: str) -> ProgressTree:
        """The user's tree; backfilled from the flat attempt list (and saved) if missing or damaged."""
        user = self.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        tree = self._stored_tree(user.get("progress", {}))
        if tree is not None:
            return tree

        def _backfill(db: dict) -> ProgressTree:
            stored = self._require(db, user_id)
            rebuilt = self._tree_for(stored)
            stored["progress"]["progressTree"] = rebuilt.to_json()
            return rebuilt

        practice_logger.info(f"Rebuilding progress tree for user {user_id}")
        return self.store.update(_backfill)

    # --- Favourites ---

    def list_favourites(self, user_id: str) -> List[dict]:
        user = self.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return sorted(user.get("favourites", []), key=lambda f: f.get("createdAt") or "", reverse=True)

    def is_favourite(self, user_id: str, question_id: str) -> bool:
        return any(f.get("questionId") == question_id for f in self.list_favourites(user_id))

    def add_favourite(self, user_id: str, question_id: str, **details) -> Tuple[dict, bool]:
        if not question_id:
            raise InvalidInputError("Question ID is required")

        def _add(db: dict) -> Tuple[dict, bool]:
            user = self._require(db, user_id)
            favourites = user.setdefault("favourites", [])
            existing = next((f for f in favourites if f.get("questionId") == question_id), None)
            if existing is not None:
                return copy.deepcopy(existing), False
            entry = {
                "id": str(uuid.uuid4()),
                "questionId": question_id,
                **{k: details.get(k) for k in FAVOURITE_FIELDS},
                "createdAt": self._now(),
            }
            favourites.append(entry)
            return copy.deepcopy(entry), True

        return self.store.update(_add)

    def remove_favourite(self, user_id: str, question_id: str) -> bool:
        def _remove(db: dict) -> bool:
            user = self._require(db, user_id)
            before = len(user.get("favourites", []))
            user["favourites"] = [f for f in user.get("favourites", []) if f.get("questionId") != question_id]
            return len(user["favourites"]) < before

        return self.store.update(_remove)

    def favourite_stats_by_topic(self, user_id: str) -> List[dict]:
        counts = {}
        for favourite in self.list_favourites(user_id):
            topic = favourite.get("parentTopic")
            counts[topic] = counts.get(topic, 0) + 1
        return [
            {"parentTopic": topic, "count": count}
            for topic, count in sorted(counts.items(), key=lambda item: item[1], reverse=True)
        ]
