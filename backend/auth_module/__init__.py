import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from .config import Settings, load_settings
from .database import Base, build_engine, build_session_factory
from .errors import Failure
from .middleware import AuthorizationGuard, Identity, get_current_identity, require_roles
from .routes import router
from .security import PasswordHasher, TokenIssuer, TokenVerifier
from .services import SessionLifecycle
from .store import CredentialStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthModule:
    settings: Settings
    engine: Engine
    store: CredentialStore
    hasher: PasswordHasher
    issuer: TokenIssuer
    verifier: TokenVerifier
    guard: AuthorizationGuard
    lifecycle: SessionLifecycle

    def close(self) -> None:
        self.hasher.shutdown()
        self.engine.dispose()


def build_auth_module(settings: Settings) -> AuthModule:
    engine = build_engine(settings)
    store = CredentialStore(build_session_factory(engine))
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, max_workers=settings.password_hash_workers)
    issuer = TokenIssuer(settings)
    verifier = TokenVerifier(settings)
    return AuthModule(
        settings=settings,
        engine=engine,
        store=store,
        hasher=hasher,
        issuer=issuer,
        verifier=verifier,
        guard=AuthorizationGuard(verifier),
        lifecycle=SessionLifecycle(store, hasher, issuer, verifier),
    )


def init_auth_module(module: AuthModule) -> None:
    Base.metadata.create_all(bind=module.engine)
    seeded = module.lifecycle.seed_admin(
        email=module.settings.seed_admin_email,
        password=module.settings.seed_admin_password,
    )
    if isinstance(seeded, Failure):
        logger.error(f"Admin seeding failed ({seeded.kind.value})")


__all__ = [
    "AuthModule",
    "Identity",
    "Settings",
    "build_auth_module",
    "get_current_identity",
    "init_auth_module",
    "load_settings",
    "require_roles",
    "router",
]
