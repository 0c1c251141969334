"""
Pytest 配置和共享 fixtures
"""
import base64
import os

# 应用配置在导入时读取，先写入测试环境变量
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_JWT_KEY"] = "test-jwt-key"
os.environ["WEBHOOK_SECRET"] = "whsec_" + base64.b64encode(b"test-webhook-signing-secret-0001").decode()

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.database import Base, get_db
from backoffice.models.entities import (
    Addon, BedType, Feature, Floor, Guest, GuestIdCardType, GuestNationality,
    PaymentStatus, Room, RoomClass, RoomClassBedType, RoomClassFeature, RoomStatus
)
from backoffice.security.auth import create_access_token
from backoffice.main import app


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============== 认证相关 Fixtures ==============

@pytest.fixture
def user_token():
    return create_access_token("user_test_1")


@pytest.fixture
def auth_headers(user_token):
    """返回带认证的请求头"""
    return {"Authorization": f"Bearer {user_token}"}


# ============== 基础数据 Fixtures ==============

@pytest.fixture
def sample_floor(db_session):
    floor = Floor(number=1)
    db_session.add(floor)
    db_session.commit()
    db_session.refresh(floor)
    return floor


@pytest.fixture
def sample_bed_type(db_session):
    bed_type = BedType(name="King")
    db_session.add(bed_type)
    db_session.commit()
    db_session.refresh(bed_type)
    return bed_type


@pytest.fixture
def sample_feature(db_session):
    feature = Feature(name="Sea View", price=Decimal("25.00"), image_url="https://cdn.example.com/sea.webp")
    db_session.add(feature)
    db_session.commit()
    db_session.refresh(feature)
    return feature


@pytest.fixture
def sample_room_class(db_session, sample_bed_type, sample_feature):
    """带一个床型和一个设施的房型"""
    room_class = RoomClass(name="Deluxe", price=Decimal("150.00"),
                           image_url="https://cdn.example.com/deluxe.webp")
    room_class.bed_types.append(RoomClassBedType(bed_type_id=sample_bed_type.id, num_beds=1))
    room_class.features.append(RoomClassFeature(feature_id=sample_feature.id))
    db_session.add(room_class)
    db_session.commit()
    db_session.refresh(room_class)
    return room_class


@pytest.fixture
def sample_room_status(db_session):
    status = RoomStatus(name="Available", number=1, color="#00FF00", is_available=True)
    db_session.add(status)
    db_session.commit()
    db_session.refresh(status)
    return status


@pytest.fixture
def sample_room(db_session, sample_floor, sample_room_class, sample_room_status):
    room = Room(number=101, floor_id=sample_floor.id, room_class_id=sample_room_class.id,
                room_status_id=sample_room_status.id)
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_guest(db_session):
    guest = Guest(
        nationality=GuestNationality.FOREIGNER,
        id_card_type=GuestIdCardType.PASSPORT,
        id_card_number="X1234567",
        name="Alice Walker",
        email="alice@example.com",
        phone="+62811000111",
    )
    db_session.add(guest)
    db_session.commit()
    db_session.refresh(guest)
    return guest


@pytest.fixture
def sample_addon(db_session):
    addon = Addon(addon_name="Breakfast", price=Decimal("10.00"))
    db_session.add(addon)
    db_session.commit()
    db_session.refresh(addon)
    return addon


@pytest.fixture
def sample_payment_status(db_session):
    status = PaymentStatus(name="Paid", number=1, color="#0000FF")
    db_session.add(status)
    db_session.commit()
    db_session.refresh(status)
    return status
