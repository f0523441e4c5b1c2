from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from common import auth
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import get_current_active_user
from common.errors import ConflictError, ValidationError, install_error_handlers
from common.logging_middleware import add_audit_middleware, configure_logging
from common.models import RoleEnum, User
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import PasswordChange, ProfileUpdate, Token, UserCreate, UserEnvelope, UserRead

settings = get_settings()
MIN_PASSWORD_LENGTH = 6


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    fastapi_app = FastAPI(title="Users Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(fastapi_app)
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "users")
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def _envelope(user: User, message: str | None = None) -> UserEnvelope:
    return UserEnvelope(message=message, user=UserRead.model_validate(user))


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "users"}


@app.post("/auth/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_user(request: Request, user_in: UserCreate, db: Session = Depends(get_db)) -> UserEnvelope:
    if db.query(User).filter((User.username == user_in.username) | (User.email == user_in.email)).first():
        raise ConflictError("Un utilisateur avec cet email ou ce nom existe déjà")

    # Elevated roles can only be self-assigned while no admin exists yet.
    admins_exist = db.query(User).filter(User.role == RoleEnum.ADMIN).first() is not None
    if user_in.role != RoleEnum.CLIENT and admins_exist:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Seul un administrateur peut attribuer ce rôle")

    user = User(
        name=user_in.name,
        surname=user_in.surname,
        username=user_in.username,
        email=user_in.email,
        phone=user_in.phone,
        role=user_in.role,
        hashed_password=auth.get_password_hash(user_in.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return _envelope(user, "Inscription réussie")


@app.post("/auth/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> Token:
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Identifiants invalides")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Compte désactivé")

    user.last_login = datetime.utcnow()
    db.commit()
    access_token = auth.create_access_token({"sub": user.username, "role": user.role.value})
    return Token(access_token=access_token)


@app.get("/auth/profile", response_model=UserEnvelope)
def get_profile(current_user: User = Depends(get_current_active_user)) -> UserEnvelope:
    return _envelope(current_user)


@app.put("/auth/profile", response_model=UserEnvelope)
@limiter.limit("10/minute")
def update_profile(
    request: Request,
    profile: ProfileUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> UserEnvelope:
    if profile.role is not None or profile.is_active is not None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Modification du rôle ou du statut non autorisée",
        )
    if profile.email and profile.email != current_user.email:
        if db.query(User).filter(User.email == profile.email).first():
            raise ConflictError("Cet email est déjà utilisé")

    for field, value in profile.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return _envelope(current_user, "Profil mis à jour avec succès")


@app.put("/auth/change-password", response_model=UserEnvelope)
@limiter.limit("5/minute")
def change_password(
    request: Request,
    change: PasswordChange,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> UserEnvelope:
    if not auth.verify_password(change.current_password, current_user.hashed_password):
        raise ValidationError("Le mot de passe actuel est incorrect")
    if len(change.new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Le nouveau mot de passe doit contenir au moins {MIN_PASSWORD_LENGTH} caractères")
    if change.new_password == change.current_password:
        raise ValidationError("Le nouveau mot de passe doit être différent de l'ancien")

    current_user.hashed_password = auth.get_password_hash(change.new_password)
    db.commit()
    db.refresh(current_user)
    return _envelope(current_user, "Mot de passe modifié avec succès")


@app.get("/auth/verify", response_model=UserEnvelope)
def verify_token(current_user: User = Depends(get_current_active_user)) -> UserEnvelope:
    return _envelope(current_user, "Token valide")
