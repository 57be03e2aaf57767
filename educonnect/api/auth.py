from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from ..core.database import get_db
from ..core.auth import verify_password, create_access_token, get_password_hash, verify_token, ADMIN, TEACHER
from ..models.admin import Admin
from ..models.teacher import Teacher
from ..models.registration_code import RegistrationCode
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    user_type: str
    user_id: int
    user_name: str


class RegisterAdminRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)


class VerifyCodeRequest(BaseModel):
    code: str


class RegisterTeacherRequest(BaseModel):
    code: str
    email: EmailStr
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1)
    paternal_surname: str = Field(min_length=1)
    maternal_surname: Optional[str] = None
    phone: Optional[str] = None


async def _find_code(db: AsyncSession, code: str) -> RegistrationCode:
    result = await db.execute(select(RegistrationCode).filter(RegistrationCode.code == code.strip()))
    registration_code = result.scalar_one_or_none()
    if not registration_code:
        raise HTTPException(status_code=404, detail="Invalid code")
    if registration_code.is_used:
        raise HTTPException(status_code=400, detail="Code already used")
    return registration_code


async def _email_taken(db: AsyncSession, email: str) -> bool:
    admin = await db.execute(select(Admin).filter(Admin.email == email))
    if admin.scalar_one_or_none():
        return True
    teacher = await db.execute(select(Teacher).filter(Teacher.email == email))
    return teacher.scalar_one_or_none() is not None


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Authenticate user (admin or teacher) and return access token
    """
    try:
        logger.info(f"Login attempt for email: {request.email}")

        admin_result = await db.execute(
            select(Admin).filter(Admin.email == request.email.lower())
        )
        admin = admin_result.scalar_one_or_none()

        if admin and verify_password(request.password, admin.hashed_password):
            logger.info(f"Admin login successful: {admin.email}")
            token = create_access_token(data={"sub": admin.id, "type": ADMIN})
            return LoginResponse(
                access_token=token,
                token_type="bearer",
                user_type=ADMIN,
                user_id=admin.id,
                user_name=admin.name
            )

        teacher_result = await db.execute(
            select(Teacher).filter(Teacher.email == request.email.lower())
        )
        teacher = teacher_result.scalar_one_or_none()

        if teacher and verify_password(request.password, teacher.hashed_password):
            logger.info(f"Teacher login successful: {teacher.email}")
            token = create_access_token(data={"sub": teacher.id, "type": TEACHER})
            return LoginResponse(
                access_token=token,
                token_type="bearer",
                user_type=TEACHER,
                user_id=teacher.id,
                user_name=teacher.full_name
            )

        logger.warning(f"Failed login attempt for email: {request.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error for {request.email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication failed"
        )


@router.post("/register-admin", response_model=LoginResponse)
async def register_admin(request: RegisterAdminRequest, db: AsyncSession = Depends(get_db)):
    """
    Register the first admin user (only if no admins exist)
    """
    try:
        logger.info(f"Admin registration attempt for email: {request.email}")

        existing_admin_result = await db.execute(select(Admin).limit(1))
        if existing_admin_result.scalar_one_or_none():
            logger.warning("Admin registration attempted but admin already exists")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Admin user already exists"
            )

        if await _email_taken(db, request.email.lower()):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        new_admin = Admin(
            name=request.name,
            email=request.email.lower(),
            hashed_password=get_password_hash(request.password)
        )

        db.add(new_admin)
        await db.commit()
        await db.refresh(new_admin)

        logger.info(f"Admin registered successfully: {new_admin.email}")

        token = create_access_token(data={"sub": new_admin.id, "type": ADMIN})
        return LoginResponse(
            access_token=token,
            token_type="bearer",
            user_type=ADMIN,
            user_id=new_admin.id,
            user_name=new_admin.name
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Admin registration error for {request.email}: {e}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed"
        )


@router.get("/check-admin-exists")
async def check_admin_exists(db: AsyncSession = Depends(get_db)):
    """
    Check if any admin user exists in the system
    """
    try:
        admin_result = await db.execute(select(Admin).limit(1))
        return {"admin_exists": admin_result.scalar_one_or_none() is not None}

    except Exception as e:
        logger.error(f"Error checking admin existence: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not check admin status"
        )


@router.post("/verify-code")
async def verify_code(request: VerifyCodeRequest, db: AsyncSession = Depends(get_db)):
    """
    Check that a registration code exists and has not been used
    """
    try:
        registration_code = await _find_code(db, request.code)
        return {"valid": True, "code": registration_code.code}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error verifying code: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not verify code"
        )


@router.post("/register", response_model=LoginResponse)
async def register_teacher(request: RegisterTeacherRequest, db: AsyncSession = Depends(get_db)):
    """
    Register a teacher with a registration code handed out by an admin
    """
    try:
        logger.info(f"Teacher registration attempt for email: {request.email}")

        registration_code = await _find_code(db, request.code)

        if await _email_taken(db, request.email.lower()):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        teacher = Teacher(
            email=request.email.lower(),
            hashed_password=get_password_hash(request.password),
            first_name=request.first_name.strip(),
            paternal_surname=request.paternal_surname.strip(),
            maternal_surname=request.maternal_surname or None,
            phone=request.phone or None,
            registration_code_id=registration_code.id,
        )
        db.add(teacher)
        await db.flush()

        registration_code.is_used = True
        registration_code.used_by = teacher.id

        await db.commit()
        await db.refresh(teacher)

        logger.info(f"Teacher registered successfully: {teacher.email} with code {registration_code.code}")

        token = create_access_token(data={"sub": teacher.id, "type": TEACHER})
        return LoginResponse(
            access_token=token,
            token_type="bearer",
            user_type=TEACHER,
            user_id=teacher.id,
            user_name=teacher.full_name
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Teacher registration error for {request.email}: {e}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed"
        )


@router.post("/logout")
async def logout():
    """
    Logout endpoint (client-side token removal)
    """
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_current_user(token_data: dict = Depends(verify_token), db: AsyncSession = Depends(get_db)):
    """
    Get current user information
    """
    try:
        user_id = token_data["user_id"]
        user_type = token_data["user_type"]

        if user_type == ADMIN:
            result = await db.execute(select(Admin).filter(Admin.id == user_id))
            user = result.scalar_one_or_none()
            name = user.name if user else None
        else:
            result = await db.execute(select(Teacher).filter(Teacher.id == user_id))
            user = result.scalar_one_or_none()
            name = user.full_name if user else None

        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )

        return {
            "id": user.id,
            "name": name,
            "email": user.email,
            "user_type": user_type
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting current user: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not get user information"
        )
