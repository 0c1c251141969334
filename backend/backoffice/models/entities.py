"""
酒店后台数据表定义
业务键由唯一索引保证（大小写不敏感的键使用 lower(column) 索引），
父记录删除由 RESTRICT 外键兜底
"""
import uuid
from datetime import datetime, UTC
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text, Boolean,
    Numeric, JSON, Index, UniqueConstraint, Enum as SQLEnum, func
)
from sqlalchemy.orm import relationship
from backoffice.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


# ============== 枚举定义 ==============

class GuestNationality(str, Enum):
    """客人国籍类型"""
    INDONESIAN_CITIZEN = "INDONESIAN_CITIZEN"  # 本国公民
    FOREIGNER = "FOREIGNER"                    # 外籍


class GuestIdCardType(str, Enum):
    """证件类型"""
    NATIONAL_IDENTITY_CARD = "NATIONAL_IDENTITY_CARD"
    PASSPORT = "PASSPORT"
    PERMANENT_RESIDENCE_PERMIT = "PERMANENT_RESIDENCE_PERMIT"
    TEMPORARY_STAY_PERMIT = "TEMPORARY_STAY_PERMIT"
    DRIVING_LICENSE = "DRIVING_LICENSE"


# ============== 基础资料 ==============

class Floor(TimestampMixin, Base):
    """楼层"""
    __tablename__ = "floor"

    id = Column(String(36), primary_key=True, default=new_id)
    number = Column(Integer, unique=True, nullable=False)


class BedType(TimestampMixin, Base):
    """床型"""
    __tablename__ = "bed_type"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(50), nullable=False)


class Feature(TimestampMixin, Base):
    """房型设施"""
    __tablename__ = "feature"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    image_url = Column(String(500), nullable=False)


class RoomClass(TimestampMixin, Base):
    """
    房型
    链接：床型（带床数）、设施；删除房型时一并删除链接
    """
    __tablename__ = "room_class"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(30), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    image_url = Column(String(500), nullable=False)

    bed_types = relationship("RoomClassBedType", back_populates="room_class",
                             cascade="all, delete-orphan")
    features = relationship("RoomClassFeature", back_populates="room_class",
                            cascade="all, delete-orphan")


class RoomClassBedType(TimestampMixin, Base):
    """房型 ↔ 床型 链接"""
    __tablename__ = "room_class_bed_type"
    __table_args__ = (
        UniqueConstraint("room_class_id", "bed_type_id", name="uq_room_class_bed_type"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    room_class_id = Column(String(36), ForeignKey("room_class.id", ondelete="CASCADE"), nullable=False)
    bed_type_id = Column(String(36), ForeignKey("bed_type.id", ondelete="RESTRICT"), nullable=False)
    num_beds = Column(Integer, nullable=False, default=1)

    room_class = relationship("RoomClass", back_populates="bed_types")
    bed_type = relationship("BedType")


class RoomClassFeature(TimestampMixin, Base):
    """房型 ↔ 设施 链接"""
    __tablename__ = "room_class_feature"
    __table_args__ = (
        UniqueConstraint("room_class_id", "feature_id", name="uq_room_class_feature"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    room_class_id = Column(String(36), ForeignKey("room_class.id", ondelete="CASCADE"), nullable=False)
    feature_id = Column(String(36), ForeignKey("feature.id", ondelete="RESTRICT"), nullable=False)

    room_class = relationship("RoomClass", back_populates="features")
    feature = relationship("Feature")


class RoomStatus(TimestampMixin, Base):
    """房态；至少保留一条 is_available 记录"""
    __tablename__ = "room_status"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(50), nullable=False)
    number = Column(Integer, unique=True, nullable=False)
    color = Column(String(20), nullable=False)
    is_available = Column(Boolean, nullable=False, default=False)


class Room(TimestampMixin, Base):
    """房间"""
    __tablename__ = "room"

    id = Column(String(36), primary_key=True, default=new_id)
    number = Column(Integer, unique=True, nullable=False)
    floor_id = Column(String(36), ForeignKey("floor.id", ondelete="RESTRICT"), nullable=False)
    room_class_id = Column(String(36), ForeignKey("room_class.id", ondelete="RESTRICT"), nullable=False)
    room_status_id = Column(String(36), ForeignKey("room_status.id", ondelete="RESTRICT"), nullable=False)

    floor = relationship("Floor")
    room_class = relationship("RoomClass")
    room_status = relationship("RoomStatus")


# ============== 客人与附加服务 ==============

class Guest(TimestampMixin, Base):
    """客人"""
    __tablename__ = "guest"

    id = Column(String(36), primary_key=True, default=new_id)
    nationality = Column(SQLEnum(GuestNationality), nullable=False)
    id_card_type = Column(SQLEnum(GuestIdCardType), nullable=False)
    id_card_number = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    email = Column(String(255))
    phone = Column(String(30), nullable=False)
    address = Column(Text)


class Addon(TimestampMixin, Base):
    """附加服务"""
    __tablename__ = "addon"

    id = Column(String(36), primary_key=True, default=new_id)
    addon_name = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    image_url = Column(String(500))


class PaymentStatus(TimestampMixin, Base):
    """支付状态"""
    __tablename__ = "payment_status"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(50), nullable=False)
    number = Column(Integer, unique=True, nullable=False)
    color = Column(String(20), nullable=False)


# ============== 预订 ==============

class Booking(TimestampMixin, Base):
    """
    预订
    链接：房间（带入住/离店日期）、附加服务；删除预订时一并删除链接
    """
    __tablename__ = "booking"

    id = Column(String(36), primary_key=True, default=new_id)
    guest_id = Column(String(36), ForeignKey("guest.id", ondelete="RESTRICT"), nullable=False)
    payment_status_id = Column(String(36), ForeignKey("payment_status.id", ondelete="RESTRICT"), nullable=False)
    checkin_date = Column(Date, nullable=False)
    checkout_date = Column(Date, nullable=False)
    num_adults = Column(Integer, nullable=False, default=1)
    num_children = Column(Integer, nullable=False, default=0)
    booking_amount = Column(Numeric(12, 2), nullable=False, default=0)

    guest = relationship("Guest")
    payment_status = relationship("PaymentStatus")
    rooms = relationship("BookingRoom", back_populates="booking",
                         cascade="all, delete-orphan")
    addons = relationship("BookingAddon", back_populates="booking",
                          cascade="all, delete-orphan")


class BookingRoom(TimestampMixin, Base):
    """预订 ↔ 房间；同一房间的入住区间不可重叠"""
    __tablename__ = "booking_room"

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("booking.id", ondelete="CASCADE"), nullable=False)
    room_id = Column(String(36), ForeignKey("room.id", ondelete="RESTRICT"), nullable=False)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)

    booking = relationship("Booking", back_populates="rooms")
    room = relationship("Room")


class BookingAddon(TimestampMixin, Base):
    """预订 ↔ 附加服务"""
    __tablename__ = "booking_addon"
    __table_args__ = (
        UniqueConstraint("booking_id", "addon_id", name="uq_booking_addon"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("booking.id", ondelete="CASCADE"), nullable=False)
    addon_id = Column(String(36), ForeignKey("addon.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    booking = relationship("Booking", back_populates="addons")
    addon = relationship("Addon")


# ============== 活动日志 ==============

class ActivityLog(Base):
    """
    活动日志（不可变）
    由认证 Webhook 写入，API 只读
    """
    __tablename__ = "activity_log"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(100), nullable=False)
    action_type = Column(String(50), nullable=False)     # login / logout
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(100))
    ip_address = Column(String(64))
    # "metadata" 为声明式基类保留名，属性改名 extra
    extra = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


# ============== 大小写不敏感的业务键唯一索引 ==============

Index("uq_bed_type_name_lower", func.lower(BedType.name), unique=True)
Index("uq_feature_name_lower", func.lower(Feature.name), unique=True)
Index("uq_room_class_name_lower", func.lower(RoomClass.name), unique=True)
Index("uq_room_status_name_lower", func.lower(RoomStatus.name), unique=True)
Index("uq_room_status_color_lower", func.lower(RoomStatus.color), unique=True)
Index("uq_guest_email_lower", func.lower(Guest.email), unique=True)
Index("uq_addon_name_lower", func.lower(Addon.addon_name), unique=True)
Index("uq_payment_status_name_lower", func.lower(PaymentStatus.name), unique=True)
Index("uq_payment_status_color_lower", func.lower(PaymentStatus.color), unique=True)
