"""
Pydantic 模式定义
用于 API 请求体验证；PUT 为整体替换，复用创建模式
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from backoffice.models.entities import GuestIdCardType, GuestNationality

BED_TYPE_NAME_MAX_LENGTH = 50
FEATURE_NAME_MAX_LENGTH = 200
ROOM_CLASS_NAME_MAX_LENGTH = 30
ADDON_NAME_MAX_LENGTH = 100
STATUS_NAME_MAX_LENGTH = 50


class RequestBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


# ============== 楼层 / 床型 / 设施 ==============

class FloorCreate(RequestBody):
    number: int


class BedTypeCreate(RequestBody):
    name: str = Field(..., min_length=1, max_length=BED_TYPE_NAME_MAX_LENGTH)


class FeatureCreate(RequestBody):
    name: str = Field(..., min_length=1, max_length=FEATURE_NAME_MAX_LENGTH)
    price: Decimal = Field(..., ge=0)
    image_url: str = Field(..., min_length=1, max_length=500)


# ============== 房型 ==============

class RoomClassBedTypeItem(RequestBody):
    bed_type_id: str = Field(..., min_length=1)
    num_beds: int = Field(..., ge=1)


class RoomClassCreate(RequestBody):
    name: str = Field(..., min_length=1, max_length=ROOM_CLASS_NAME_MAX_LENGTH)
    price: Decimal = Field(..., gt=0)
    image_url: str = Field(..., min_length=1, max_length=500)
    bed_types: List[RoomClassBedTypeItem] = Field(..., min_length=1)
    feature_ids: List[str] = Field(default_factory=list)


class RoomClassBedTypeCreate(RequestBody):
    room_class_id: str = Field(..., min_length=1)
    bed_type_id: str = Field(..., min_length=1)
    num_beds: int = Field(..., ge=1)


class RoomClassBedTypeBeds(RequestBody):
    """按组合键更新时只修改床数"""
    num_beds: int = Field(..., ge=1)


class RoomClassFeatureCreate(RequestBody):
    room_class_id: str = Field(..., min_length=1)
    feature_id: str = Field(..., min_length=1)


# ============== 房态 / 支付状态 ==============

class StatusBody(RequestBody):
    name: str = Field(..., min_length=1, max_length=STATUS_NAME_MAX_LENGTH)
    number: int
    color: str = Field(..., min_length=1, max_length=20)


class RoomStatusCreate(StatusBody):
    is_available: bool = False


class PaymentStatusCreate(StatusBody):
    pass


# ============== 房间 ==============

class RoomCreate(RequestBody):
    number: int
    floor_id: str = Field(..., min_length=1)
    room_class_id: str = Field(..., min_length=1)
    room_status_id: str = Field(..., min_length=1)


# ============== 客人 / 附加服务 ==============

class GuestCreate(RequestBody):
    nationality: GuestNationality
    id_card_type: GuestIdCardType
    id_card_number: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: str = Field(..., min_length=1, max_length=30)
    address: Optional[str] = None

    @field_validator("email", "address")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        # 空字符串不参与唯一索引
        return value or None


class AddonCreate(RequestBody):
    addon_name: str = Field(..., min_length=1, max_length=ADDON_NAME_MAX_LENGTH)
    price: Decimal = Field(..., gt=0)
    image_url: Optional[str] = Field(None, max_length=500)


# ============== 预订 ==============

class BookingCreate(RequestBody):
    """
    预订请求体
    room_ids 至少一间；离店日期必须晚于入住日期
    """
    guest_id: str = Field(..., min_length=1)
    payment_status_id: str = Field(..., min_length=1)
    checkin_date: date
    checkout_date: date
    num_adults: int = Field(..., ge=1)
    num_children: int = Field(0, ge=0)
    booking_amount: Decimal = Field(..., ge=0)
    room_ids: List[str] = Field(..., min_length=1)
    addon_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_stay(self):
        if self.checkout_date <= self.checkin_date:
            raise ValueError("Booking checkout date must be after checkin date")
        return self


class BookingRoomCreate(RequestBody):
    booking_id: str = Field(..., min_length=1)
    room_id: str = Field(..., min_length=1)
    check_in: date
    check_out: date

    @model_validator(mode="after")
    def check_stay(self):
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class BookingAddonCreate(RequestBody):
    booking_id: str = Field(..., min_length=1)
    addon_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
