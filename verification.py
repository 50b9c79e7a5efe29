"""
Short-lived, single-use numeric codes bound to an (email, purpose) pair.

Per pair an entry moves none -> issued -> consumed | expired | locked.
Verification answers a plain bool for every failure (wrong, expired, used,
missing) so callers cannot tell which emails have codes outstanding.
"""
import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from crypto_utils import FieldCipher, keyed_digest
from json_store import JsonFileStore
from logger import practice_logger

EMAIL_VERIFICATION = "email_verification"
LOGIN_VERIFICATION = "login_verification"
CODE_LENGTH = 6


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_legacy_raw(stored: str) -> bool:
    return len(stored) == CODE_LENGTH and stored.isdigit()


@dataclass
class IssuedCode:
    code: str
    entry: dict
    reused: bool = False


class VerificationCodeService:

    def __init__(
        self,
        store: JsonFileStore,
        secret: str,
        cipher: FieldCipher,
        expiry_minutes: int = 15,
        cooldown_seconds: int = 90,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.secret = secret
        self.cipher = cipher
        self.expiry = timedelta(minutes=expiry_minutes)
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self.max_attempts = max_attempts
        self.clock = clock

    def generate_code(self) -> str:
        return str(100000 + secrets.randbelow(900000))

    def hash_code(self, code: str, purpose: str) -> str:
        # Purpose is part of the message so a login code never verifies a signup
        return keyed_digest(self.secret, f"{purpose}:{code}")

    def email_key(self, email: str) -> str:
        return keyed_digest(self.secret, email.strip().lower())

    def _is_live(self, entry: dict, now: datetime) -> bool:
        try:
            return _parse(entry["expiresAt"]) > now
        except (KeyError, TypeError, ValueError):
            return False

    def _within_cooldown(self, entry: dict, now: datetime) -> bool:
        try:
            return now - _parse(entry["createdAt"]) < self.cooldown
        except (KeyError, TypeError, ValueError):
            return False

    def _is_locked(self, entry: dict) -> bool:
        return (entry.get("attempts") or 0) >= (entry.get("maxAttempts") or self.max_attempts)

    def _new_entry(self, email_key: str, code: str, purpose: str, now: datetime) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "email": email_key,
            "code": self.hash_code(code, purpose),
            "sealedCode": self.cipher.encrypt(code),
            "type": purpose,
            "createdAt": now.isoformat(),
            "expiresAt": (now + self.expiry).isoformat(),
            "used": False,
            "attempts": 0,
            "maxAttempts": self.max_attempts,
        }

    def _recover_code(self, entry: dict) -> Optional[str]:
        if entry.get("sealedCode"):
            try:
                return self.cipher.decrypt(entry["sealedCode"])
            except ValueError:
                return None
        if _is_legacy_raw(entry.get("code") or ""):
            return entry["code"]
        return None

    def issue(self, email: str, purpose: str = EMAIL_VERIFICATION) -> IssuedCode:
        """
        Mint a code for the pair, or hand back the pending one if it was
        issued within the cooldown window. A reissued code keeps its
        original expiry and attempt count.
        """
        email_key = self.email_key(email)

        def _issue(db: dict) -> IssuedCode:
            now = self.clock()
            codes = [vc for vc in db.get("verificationCodes", []) if self._is_live(vc, now)]
            db["verificationCodes"] = codes

            for entry in codes:
                if entry.get("email") != email_key or entry.get("type") != purpose:
                    continue
                # A consumed entry is done with; a locked one keeps its code until the cooldown ends
                if entry.get("used") and not self._is_locked(entry):
                    continue
                if not self._within_cooldown(entry, now):
                    continue
                code = self._recover_code(entry)
                if code is None:
                    break
                if not entry.get("sealedCode"):
                    # Legacy entry stored the raw code: store it hashed from now on
                    entry["code"] = self.hash_code(code, purpose)
                    entry["sealedCode"] = self.cipher.encrypt(code)
                practice_logger.info(f"Reissuing pending {purpose} code within cooldown")
                return IssuedCode(code=code, entry=dict(entry), reused=True)

            code = self.generate_code()
            db["verificationCodes"] = [
                vc for vc in db["verificationCodes"]
                if not (vc.get("email") == email_key and vc.get("type") == purpose)
            ]
            fresh = self._new_entry(email_key, code, purpose, now)
            db["verificationCodes"].append(fresh)
            return IssuedCode(code=code, entry=dict(fresh))

        return self.store.update(_issue)

    def verify(self, email: str, code: str, purpose: str = EMAIL_VERIFICATION) -> bool:
        email_key = self.email_key(email)
        candidate = self.hash_code(str(code), purpose)

        def _verify(db: dict) -> bool:
            now = self.clock()
            entry = next(
                (vc for vc in db.get("verificationCodes", [])
                 if vc.get("email") == email_key and vc.get("type") == purpose
                 and not vc.get("used") and self._is_live(vc, now)),
                None,
            )
            if entry is None:
                return False

            stored = entry.get("code") or ""
            matched = hmac.compare_digest(stored, candidate) or (
                _is_legacy_raw(stored) and stored == str(code)
            )
            if not matched:
                entry["attempts"] = (entry.get("attempts") or 0) + 1
                if self._is_locked(entry):
                    # Locked: never valid again, even with the right code
                    entry["used"] = True
                    practice_logger.warning(f"{purpose} code locked after {entry['attempts']} failed attempts")
                return False

            entry["used"] = True
            entry.pop("sealedCode", None)
            return True

        return self.store.update(_verify)

    def cleanup_expired(self) -> int:
        def _cleanup(db: dict) -> int:
            now = self.clock()
            before = db.get("verificationCodes", [])
            db["verificationCodes"] = [vc for vc in before if self._is_live(vc, now)]
            return len(before) - len(db["verificationCodes"])

        return self.store.update(_cleanup)
