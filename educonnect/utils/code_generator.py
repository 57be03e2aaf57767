import secrets
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from ..models.registration_code import RegistrationCode
import logging

logger = logging.getLogger(__name__)

CODE_DIGITS = 4


class RegistrationCodeGenerator:
    """Numeric sign-up codes handed out by admins to new teachers"""

    @staticmethod
    def generate_numeric_code(digits: int = CODE_DIGITS) -> str:
        """Random code without a leading zero, e.g. 1000..9999 for 4 digits"""
        low = 10 ** (digits - 1)
        high = 10 ** digits
        return str(low + secrets.randbelow(high - low))

    @staticmethod
    def capacity(digits: int = CODE_DIGITS) -> int:
        return 10 ** digits - 10 ** (digits - 1)


async def generate_unique_registration_code(db: AsyncSession, max_attempts: int = 50) -> str:
    """
    Generate a code that no existing RegistrationCode uses.

    Raises RuntimeError when every code of the configured length is taken or
    all attempts collide.
    """
    total_codes = await db.execute(select(func.count(RegistrationCode.id)))
    if (total_codes.scalar() or 0) >= RegistrationCodeGenerator.capacity():
        raise RuntimeError("All registration codes are in use")

    for attempt in range(max_attempts):
        code = RegistrationCodeGenerator.generate_numeric_code()

        existing = await db.execute(select(RegistrationCode).filter(RegistrationCode.code == code))
        if not existing.scalar_one_or_none():
            return code

        logger.info(f"Registration code collision on attempt {attempt + 1}")

    raise RuntimeError("Could not generate a unique registration code")
