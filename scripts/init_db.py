import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.practice.models import Firm, FirmUser, User  # noqa: E402
from app.practice.module_access import MODULE_KEYS  # noqa: E402


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the first firm and its owner in an idempotent way.
    Does NOT overwrite an existing owner's password.
    """
    firm_name = (os.environ.get("FIRM_NAME") or "Default Firm").strip()
    owner_email = (os.environ.get("ADMIN_EMAIL") or "owner@example.com").strip().lower()
    owner_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///practice.db").strip()

    with _session_scope(db_url) as s:
        firm = s.query(Firm).filter(Firm.name == firm_name).one_or_none()
        if not firm:
            firm = Firm(name=firm_name)
            s.add(firm)
            s.flush()

        user = s.query(User).filter(User.email == owner_email).one_or_none()
        if not user:
            user = User(
                email=owner_email,
                password_hash=generate_password_hash(owner_password),
                name="Firm Owner",
                role="firm_owner",
                firm_id=firm.id,
                is_active=True,
            )
            s.add(user)
            s.flush()

        membership = (
            s.query(FirmUser).filter(FirmUser.user_id == user.id, FirmUser.firm_id == firm.id).one_or_none()
        )
        if not membership:
            s.add(FirmUser(user_id=user.id, firm_id=firm.id, role="admin", permissions=sorted(MODULE_KEYS)))

    print("Initialized database (seed_only).")
    print(f"Firm: {firm_name}")
    print(f"Owner email: {owner_email}")
    print("Owner password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
