import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from educonnect.core.database import create_tables, get_db
from educonnect.main import app

ADMIN_EMAIL = "admin@escuela.edu.mx"
TEACHER_EMAIL = "teacher@escuela.edu.mx"
PASSWORD = "secret123"


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def admin_headers(client):
    response = await client.post("/auth/register-admin", json={
        "name": "Admin", "email": ADMIN_EMAIL, "password": PASSWORD
    })
    assert response.status_code == 200, response.text
    return auth_headers(response.json()["access_token"])


@pytest.fixture
async def teacher_headers(client, admin_headers):
    code = await client.post("/admin/codes", json={"label": "fixture"}, headers=admin_headers)
    assert code.status_code == 200, code.text

    response = await client.post("/auth/register", json={
        "code": code.json()["code"],
        "email": TEACHER_EMAIL,
        "password": PASSWORD,
        "first_name": "Laura",
        "paternal_surname": "Mendez",
    })
    assert response.status_code == 200, response.text
    return auth_headers(response.json()["access_token"])


@pytest.fixture
async def school_id(client, teacher_headers):
    response = await client.post("/schools", json={"name": "Primaria Juarez", "state": "Jalisco"},
                                 headers=teacher_headers)
    assert response.status_code == 200, response.text
    return response.json()["id"]


async def add_student(client, headers, school_id, first_name, paternal_surname, group="3A", **extra):
    response = await client.post(f"/schools/{school_id}/students", json={
        "first_name": first_name,
        "paternal_surname": paternal_surname,
        "group_label": group,
        **extra,
    }, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
async def students(client, teacher_headers, school_id):
    ana = await add_student(client, teacher_headers, school_id, "Ana", "Lopez", enrollment_number="A-001")
    bruno = await add_student(client, teacher_headers, school_id, "Bruno", "Diaz", enrollment_number="A-002")
    carla = await add_student(client, teacher_headers, school_id, "Carla", "Ruiz", group="3B")
    return {"ana": ana, "bruno": bruno, "carla": carla}
