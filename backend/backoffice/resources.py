"""
酒店后台资源定义

每种资源用一个 ResourceSpec 描述：搜索字段、过滤、排序、业务键、引用、删除守卫、序列化。
路由由 backoffice_core.build_resource_router 统一生成。
"""
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from backoffice_core import (
    DuplicateKeyError, NotFoundError, PageParams, PredicateGuard, Reference,
    RelationGuard, ResourceInUseError, ResourceSpec, UniqueField, ValidationFailedError,
    exists_together, has_dependents
)
from backoffice_core.resource import like_pattern, model_to_dict
from backoffice.models.entities import (
    ActivityLog, Addon, BedType, Booking, BookingAddon, BookingRoom, Feature, Floor,
    Guest, PaymentStatus, Room, RoomClass, RoomClassBedType, RoomClassFeature, RoomStatus
)
from backoffice import schemas


# ============== 序列化 ==============

def serialize_room_class(room_class: RoomClass) -> Dict[str, Any]:
    """房型 + 床型（带床数）+ 设施"""
    data = model_to_dict(room_class)
    data["bed_types"] = [
        {
            "bed_type_id": edge.bed_type_id,
            "num_beds": edge.num_beds,
            "bed_type": model_to_dict(edge.bed_type),
        }
        for edge in room_class.bed_types
    ]
    data["features"] = [model_to_dict(edge.feature) for edge in room_class.features]
    return data


def serialize_room(room: Room) -> Dict[str, Any]:
    data = model_to_dict(room)
    data["floor"] = model_to_dict(room.floor)
    data["room_class"] = serialize_room_class(room.room_class)
    data["room_status"] = model_to_dict(room.room_status)
    return data


def serialize_room_class_bed_type(edge: RoomClassBedType) -> Dict[str, Any]:
    data = model_to_dict(edge)
    data["bed_type"] = model_to_dict(edge.bed_type)
    return data


def serialize_room_class_feature(edge: RoomClassFeature) -> Dict[str, Any]:
    data = model_to_dict(edge)
    data["feature"] = model_to_dict(edge.feature)
    return data


_ROOM_CLASS_LOADS = (
    selectinload(RoomClass.bed_types).joinedload(RoomClassBedType.bed_type),
    selectinload(RoomClass.features).joinedload(RoomClassFeature.feature),
)


# ============== 房型关系边 ==============

def _require_all(db: Session, model, ids: Iterable[str], label: str, field: str) -> None:
    ids = list(ids)
    if not ids:
        return
    found = {row.id for row in db.query(model.id).filter(model.id.in_(ids)).all()}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(f"{label} not found", [f"Invalid {field}: {i}" for i in missing])


def _duplicates(values: List[str]) -> List[str]:
    seen, duplicated = set(), []
    for value in values:
        if value in seen and value not in duplicated:
            duplicated.append(value)
        seen.add(value)
    return duplicated


def validate_room_class_links(db: Session, data: Dict[str, Any], exclude_id: Optional[str]) -> None:
    """床型与设施必须存在且不重复"""
    bed_type_ids = [item["bed_type_id"] for item in data.get("bed_types") or []]
    feature_ids = list(data.get("feature_ids") or [])

    errors = [f"bed_types: duplicate bed_type_id {i}" for i in _duplicates(bed_type_ids)]
    errors += [f"feature_ids: duplicate feature_id {i}" for i in _duplicates(feature_ids)]
    if errors:
        raise ValidationFailedError("Missing or invalid required fields", errors)

    _require_all(db, BedType, bed_type_ids, "Bed type", "bed_type_id")
    _require_all(db, Feature, feature_ids, "Feature", "feature_id")


def validate_bed_type_removal(db: Session, data: Dict[str, Any], exclude_id: Optional[str]) -> None:
    """已有房间的房型不能移除已关联的床型"""
    if exclude_id is None:
        return
    wanted = {item["bed_type_id"] for item in data["bed_types"]}
    current = {
        row.bed_type_id
        for row in db.query(RoomClassBedType.bed_type_id)
        .filter(RoomClassBedType.room_class_id == exclude_id)
        .all()
    }
    if current - wanted and has_dependents(db, Room, "room_class_id", exclude_id):
        raise ResourceInUseError(
            "Cannot remove bed type from room class that has rooms",
            ["Room class is assigned to one or more rooms"],
        )


def is_last_bed_type(db: Session, edge: RoomClassBedType) -> bool:
    other = (
        db.query(RoomClassBedType.id)
        .filter(RoomClassBedType.room_class_id == edge.room_class_id,
                RoomClassBedType.id != edge.id)
        .limit(1)
        .first()
    )
    return other is None


def write_room_class_links(db: Session, room_class: RoomClass, data: Dict[str, Any]) -> None:
    """
    原地替换房型的床型与设施链接

    保留的链接只更新床数，不先删后插，避免组合唯一约束冲突。
    """
    wanted_beds = {item["bed_type_id"]: item["num_beds"] for item in data["bed_types"]}
    current_beds = {edge.bed_type_id: edge for edge in room_class.bed_types}
    for bed_type_id, edge in current_beds.items():
        if bed_type_id not in wanted_beds:
            room_class.bed_types.remove(edge)
    for bed_type_id, num_beds in wanted_beds.items():
        if bed_type_id in current_beds:
            current_beds[bed_type_id].num_beds = num_beds
        else:
            room_class.bed_types.append(
                RoomClassBedType(bed_type_id=bed_type_id, num_beds=num_beds)
            )

    wanted_features = list(dict.fromkeys(data.get("feature_ids") or []))
    current_features = {edge.feature_id: edge for edge in room_class.features}
    for feature_id, edge in current_features.items():
        if feature_id not in wanted_features:
            room_class.features.remove(edge)
    for feature_id in wanted_features:
        if feature_id not in current_features:
            room_class.features.append(RoomClassFeature(feature_id=feature_id))
    db.flush()


def filter_room_classes_by_bed_type(query: Query, params: PageParams) -> Query:
    """search[bed_type]：按床型名称筛选房型"""
    name = params.field_search.get("bed_type")
    if not name:
        return query
    matching = (
        select(RoomClassBedType.room_class_id)
        .join(BedType, BedType.id == RoomClassBedType.bed_type_id)
        .where(BedType.name.ilike(like_pattern(name), escape="\\"))
    )
    return query.filter(RoomClass.id.in_(matching))


def _unique_pair(model, label: str, fields: List[str]):
    """关系边组合键唯一：创建冲突 400，更新冲突 409"""

    def validate(db: Session, data: Dict[str, Any], exclude_id: Optional[str]) -> None:
        criteria = {f: data[f] for f in fields}
        if exists_together(db, model, criteria, exclude_id):
            raise DuplicateKeyError(
                f"{label} already exists",
                [f"{' and '.join(fields)} combination must be unique"],
                status_code=400 if exclude_id is None else 409,
            )

    return validate


# ============== 房态：至少保留一条可用状态 ==============

def is_last_available_status(db: Session, status: RoomStatus) -> bool:
    if not status.is_available:
        return False
    other = (
        db.query(RoomStatus.id)
        .filter(RoomStatus.is_available.is_(True), RoomStatus.id != status.id)
        .limit(1)
        .first()
    )
    return other is None


# ============== 预订 ==============

def serialize_booking(booking: Booking) -> Dict[str, Any]:
    """预订 + 客人 + 支付状态 + 房间 + 附加服务（带数量）"""
    data = model_to_dict(booking)
    data["guest"] = model_to_dict(booking.guest)
    data["payment_status"] = model_to_dict(booking.payment_status)
    data["rooms"] = [_booked_room(edge.room) for edge in booking.rooms]
    data["addons"] = [
        {**model_to_dict(edge.addon), "quantity": edge.quantity}
        for edge in booking.addons
    ]
    return data


def _booked_room(room: Room) -> Dict[str, Any]:
    data = model_to_dict(room)
    data["floor"] = model_to_dict(room.floor)
    data["room_class"] = model_to_dict(room.room_class)
    return data


def serialize_booking_room(edge: BookingRoom) -> Dict[str, Any]:
    data = model_to_dict(edge)
    data["room"] = model_to_dict(edge.room)
    return data


def serialize_booking_addon(edge: BookingAddon) -> Dict[str, Any]:
    data = model_to_dict(edge)
    data["addon"] = model_to_dict(edge.addon)
    return data


_BOOKING_LOADS = (
    joinedload(Booking.guest),
    joinedload(Booking.payment_status),
    selectinload(Booking.rooms).joinedload(BookingRoom.room).joinedload(Room.floor),
    selectinload(Booking.rooms).joinedload(BookingRoom.room).joinedload(Room.room_class),
    selectinload(Booking.addons).joinedload(BookingAddon.addon),
)


def booked_room_numbers(db: Session, room_ids: Iterable[str], check_in: date, check_out: date,
                        exclude_booking_id: Optional[str] = None,
                        exclude_id: Optional[str] = None) -> List[int]:
    """入住区间与 [check_in, check_out) 重叠的房间号"""
    query = (
        db.query(Room.number)
        .join(BookingRoom, BookingRoom.room_id == Room.id)
        .filter(
            BookingRoom.room_id.in_(list(room_ids)),
            BookingRoom.check_in < check_out,
            BookingRoom.check_out > check_in,
        )
    )
    if exclude_booking_id is not None:
        query = query.filter(BookingRoom.booking_id != exclude_booking_id)
    if exclude_id is not None:
        query = query.filter(BookingRoom.id != exclude_id)
    return sorted({row.number for row in query.all()})


def _numbers(values: Iterable[int]) -> str:
    return ", ".join(str(v) for v in values)


def validate_checkin_date(db: Session, data: Dict[str, Any], exclude_id: Optional[str]) -> None:
    """新建预订的入住日期不能早于今天"""
    if exclude_id is None and data["checkin_date"] < date.today():
        raise ValidationFailedError(
            "Invalid checkin date", ["Booking checkin date cannot be in the past"]
        )


def validate_booking_links(db: Session, data: Dict[str, Any], exclude_id: Optional[str]) -> None:
    """
    房间与附加服务校验

    房间必须存在；新加入的房间必须处于可用房态；
    所有房间在入住区间内不能被其它预订占用。
    """
    room_ids = list(data["room_ids"])
    addon_ids = list(data.get("addon_ids") or [])

    errors = [f"room_ids: duplicate room_id {i}" for i in _duplicates(room_ids)]
    errors += [f"addon_ids: duplicate addon_id {i}" for i in _duplicates(addon_ids)]
    if errors:
        raise ValidationFailedError("Missing or invalid required fields", errors)

    _require_all(db, Room, room_ids, "Room", "room_id")
    _require_all(db, Addon, addon_ids, "Addon", "addon_id")

    already_linked = set()
    if exclude_id is not None:
        already_linked = {
            row.room_id
            for row in db.query(BookingRoom.room_id).filter(BookingRoom.booking_id == exclude_id).all()
        }
    unavailable = sorted(
        room.number
        for room in db.query(Room).options(joinedload(Room.room_status))
        .filter(Room.id.in_(room_ids)).all()
        if room.id not in already_linked and not room.room_status.is_available
    )
    if unavailable:
        raise ValidationFailedError(
            "Rooms not available",
            [f"Rooms {_numbers(unavailable)} are not available for booking"],
        )

    booked = booked_room_numbers(db, room_ids, data["checkin_date"], data["checkout_date"],
                                 exclude_booking_id=exclude_id)
    if booked:
        raise ValidationFailedError(
            "Rooms not available for selected dates",
            [f"Rooms {_numbers(booked)} are already booked for the selected dates"],
        )


def write_booking_links(db: Session, booking: Booking, data: Dict[str, Any]) -> None:
    """原地替换预订的房间与附加服务；房间链接随预订日期更新"""
    wanted_rooms = list(dict.fromkeys(data["room_ids"]))
    current_rooms = {edge.room_id: edge for edge in booking.rooms}
    for room_id, edge in current_rooms.items():
        if room_id not in wanted_rooms:
            booking.rooms.remove(edge)
    for room_id in wanted_rooms:
        edge = current_rooms.get(room_id)
        if edge is None:
            booking.rooms.append(BookingRoom(room_id=room_id, check_in=data["checkin_date"],
                                             check_out=data["checkout_date"]))
        else:
            edge.check_in = data["checkin_date"]
            edge.check_out = data["checkout_date"]

    wanted_addons = list(dict.fromkeys(data.get("addon_ids") or []))
    current_addons = {edge.addon_id: edge for edge in booking.addons}
    for addon_id, edge in current_addons.items():
        if addon_id not in wanted_addons:
            booking.addons.remove(edge)
    for addon_id in wanted_addons:
        if addon_id not in current_addons:
            booking.addons.append(BookingAddon(addon_id=addon_id))
    db.flush()


def validate_booking_room_stay(db: Session, data: Dict[str, Any], exclude_id: Optional[str]) -> None:
    """同一房间的入住区间不可重叠"""
    booked = booked_room_numbers(db, [data["room_id"]], data["check_in"], data["check_out"],
                                 exclude_id=exclude_id)
    if booked:
        raise ValidationFailedError(
            "Room already booked",
            [f"Room {_numbers(booked)} is already booked for the selected dates"],
        )


# ============== 资源清单 ==============

FLOORS = ResourceSpec(
    label="Floor",
    path="floors",
    model=Floor,
    create_schema=schemas.FloorCreate,
    search_fields=("number",),
    order_by="number",
    unique_fields=(UniqueField("number", "Floor number"),),
    guards=(
        RelationGuard(Room, "floor_id",
                      "Cannot delete floor that has rooms",
                      "Floor has one or more rooms assigned to it"),
    ),
    bulk=True,
)

BED_TYPES = ResourceSpec(
    label="Bed type",
    path="bed-types",
    model=BedType,
    create_schema=schemas.BedTypeCreate,
    search_fields=("name",),
    order_by="name",
    unique_fields=(UniqueField("name", "Bed type name"),),
    guards=(
        RelationGuard(RoomClassBedType, "bed_type_id",
                      "Cannot delete bed type that is used by room classes",
                      "Bed type is assigned to one or more room classes"),
    ),
    bulk=True,
)

FEATURES = ResourceSpec(
    label="Feature",
    path="features",
    model=Feature,
    create_schema=schemas.FeatureCreate,
    search_fields=("name",),
    range_fields=("price",),
    order_by="name",
    unique_fields=(UniqueField("name", "Feature name"),),
    guards=(
        RelationGuard(RoomClassFeature, "feature_id",
                      "Cannot delete feature that is used by room classes",
                      "Feature is assigned to one or more room classes"),
    ),
    bulk=True,
)

ROOM_CLASSES = ResourceSpec(
    label="Room class",
    plural_label="Room classes",
    path="room-classes",
    model=RoomClass,
    create_schema=schemas.RoomClassCreate,
    search_fields=("name",),
    range_fields=("price",),
    order_by="name",
    unique_fields=(UniqueField("name", "Room class name"),),
    guards=(
        RelationGuard(Room, "room_class_id",
                      "Cannot delete room class that has rooms",
                      "Room class is assigned to one or more rooms"),
    ),
    validators=(validate_room_class_links, validate_bed_type_removal),
    relation_fields=("bed_types", "feature_ids"),
    write_relations=write_room_class_links,
    serializer=serialize_room_class,
    query_options=_ROOM_CLASS_LOADS,
    query_hook=filter_room_classes_by_bed_type,
    bulk=True,
)

ROOM_CLASS_BED_TYPES = ResourceSpec(
    label="Room class bed type",
    path="room-class-bed-types",
    model=RoomClassBedType,
    create_schema=schemas.RoomClassBedTypeCreate,
    filter_fields=("room_class_id", "bed_type_id"),
    references=(
        Reference("room_class_id", RoomClass, "Room class"),
        Reference("bed_type_id", BedType, "Bed type"),
    ),
    guards=(
        RelationGuard(Room, "room_class_id",
                      "Cannot remove bed type from room class that has rooms",
                      "Room class is assigned to one or more rooms",
                      parent_field="room_class_id"),
        PredicateGuard(is_last_bed_type,
                       "Cannot remove the last bed type from room class",
                       "Room class must keep at least one bed type"),
    ),
    validators=(_unique_pair(RoomClassBedType, "Room class bed type",
                             ["room_class_id", "bed_type_id"]),),
    serializer=serialize_room_class_bed_type,
    query_options=(joinedload(RoomClassBedType.bed_type),),
    bulk=True,
    key_fields=("room_class_id", "bed_type_id"),
    key_update_schema=schemas.RoomClassBedTypeBeds,
)

ROOM_CLASS_FEATURES = ResourceSpec(
    label="Room class feature",
    path="room-class-features",
    model=RoomClassFeature,
    create_schema=schemas.RoomClassFeatureCreate,
    filter_fields=("room_class_id", "feature_id"),
    references=(
        Reference("room_class_id", RoomClass, "Room class"),
        Reference("feature_id", Feature, "Feature"),
    ),
    validators=(_unique_pair(RoomClassFeature, "Room class feature",
                             ["room_class_id", "feature_id"]),),
    serializer=serialize_room_class_feature,
    query_options=(joinedload(RoomClassFeature.feature),),
    bulk=True,
    key_fields=("room_class_id", "feature_id"),
)

ROOM_STATUSES = ResourceSpec(
    label="Room status",
    plural_label="Room statuses",
    path="room-statuses",
    model=RoomStatus,
    create_schema=schemas.RoomStatusCreate,
    search_fields=("name", "color"),
    order_by="number",
    unique_fields=(
        UniqueField("name", "Room status name"),
        UniqueField("number", "Room status number"),
        UniqueField("color", "Room status color"),
    ),
    guards=(
        RelationGuard(Room, "room_status_id",
                      "Cannot delete room status that is used by rooms",
                      "Room status is assigned to one or more rooms"),
        PredicateGuard(is_last_available_status,
                       "Cannot delete the last available room status",
                       "At least one available room status must exist"),
    ),
    bulk=True,
)

ROOMS = ResourceSpec(
    label="Room",
    path="rooms",
    model=Room,
    create_schema=schemas.RoomCreate,
    search_fields=("number",),
    filter_fields=("floor_id", "room_class_id", "room_status_id"),
    order_by="number",
    unique_fields=(UniqueField("number", "Room number"),),
    references=(
        Reference("floor_id", Floor, "Floor"),
        Reference("room_class_id", RoomClass, "Room class"),
        Reference("room_status_id", RoomStatus, "Room status"),
    ),
    guards=(
        RelationGuard(BookingRoom, "room_id",
                      "Cannot delete room that has bookings",
                      "Room is referenced by one or more bookings"),
    ),
    serializer=serialize_room,
    query_options=(
        joinedload(Room.floor),
        joinedload(Room.room_status),
        joinedload(Room.room_class).selectinload(RoomClass.bed_types)
        .joinedload(RoomClassBedType.bed_type),
        joinedload(Room.room_class).selectinload(RoomClass.features)
        .joinedload(RoomClassFeature.feature),
    ),
)

GUESTS = ResourceSpec(
    label="Guest",
    path="guests",
    model=Guest,
    create_schema=schemas.GuestCreate,
    search_fields=("name", "email", "phone"),
    filter_fields=("nationality", "id_card_type"),
    descending=True,
    unique_fields=(
        UniqueField("id_card_number", "ID card number"),
        UniqueField("email", "Email"),
    ),
    guards=(
        RelationGuard(Booking, "guest_id",
                      "Cannot delete guest that has bookings",
                      "Guest is referenced by one or more bookings"),
    ),
)

ADDONS = ResourceSpec(
    label="Addon",
    path="addons",
    model=Addon,
    create_schema=schemas.AddonCreate,
    search_fields=("addon_name",),
    range_fields=("price",),
    order_by="addon_name",
    unique_fields=(UniqueField("addon_name", "Addon name"),),
    guards=(
        RelationGuard(BookingAddon, "addon_id",
                      "Cannot delete addon that is used in bookings",
                      "Addon is referenced by one or more bookings"),
    ),
    bulk=True,
)

PAYMENT_STATUSES = ResourceSpec(
    label="Payment status",
    plural_label="Payment statuses",
    path="payment-statuses",
    model=PaymentStatus,
    create_schema=schemas.PaymentStatusCreate,
    search_fields=("name", "color"),
    order_by="number",
    unique_fields=(
        UniqueField("name", "Payment status name"),
        UniqueField("number", "Payment status number"),
        UniqueField("color", "Payment status color"),
    ),
    guards=(
        RelationGuard(Booking, "payment_status_id",
                      "Cannot delete payment status that is used by bookings",
                      "Payment status is referenced by one or more bookings"),
    ),
)

ACTIVITY_LOGS = ResourceSpec(
    label="Activity log",
    path="logs",
    model=ActivityLog,
    search_fields=("user_id", "action_type", "resource_type"),
    filter_fields=("user_id", "action_type"),
    descending=True,
    read_only=True,
)

BOOKINGS = ResourceSpec(
    label="Booking",
    path="bookings",
    model=Booking,
    create_schema=schemas.BookingCreate,
    filter_fields=("guest_id", "payment_status_id"),
    range_fields=("booking_amount",),
    order_by="checkin_date",
    descending=True,
    references=(
        Reference("guest_id", Guest, "Guest"),
        Reference("payment_status_id", PaymentStatus, "Payment status"),
    ),
    validators=(validate_checkin_date, validate_booking_links),
    relation_fields=("room_ids", "addon_ids"),
    write_relations=write_booking_links,
    serializer=serialize_booking,
    query_options=_BOOKING_LOADS,
)

BOOKING_ROOMS = ResourceSpec(
    label="Booking room",
    path="booking-rooms",
    model=BookingRoom,
    create_schema=schemas.BookingRoomCreate,
    filter_fields=("booking_id", "room_id"),
    descending=True,
    references=(
        Reference("booking_id", Booking, "Booking"),
        Reference("room_id", Room, "Room"),
    ),
    validators=(validate_booking_room_stay,),
    serializer=serialize_booking_room,
    query_options=(joinedload(BookingRoom.room),),
    bulk=True,
)

BOOKING_ADDONS = ResourceSpec(
    label="Booking addon",
    path="booking-addons",
    model=BookingAddon,
    create_schema=schemas.BookingAddonCreate,
    filter_fields=("booking_id", "addon_id"),
    descending=True,
    references=(
        Reference("booking_id", Booking, "Booking"),
        Reference("addon_id", Addon, "Addon"),
    ),
    validators=(_unique_pair(BookingAddon, "Booking addon", ["booking_id", "addon_id"]),),
    serializer=serialize_booking_addon,
    query_options=(joinedload(BookingAddon.addon),),
    bulk=True,
)

ALL_RESOURCES = (
    BOOKINGS,
    BOOKING_ROOMS,
    BOOKING_ADDONS,
    ROOMS,
    ROOM_CLASSES,
    FLOORS,
    BED_TYPES,
    FEATURES,
    GUESTS,
    ADDONS,
    PAYMENT_STATUSES,
    ROOM_STATUSES,
    ACTIVITY_LOGS,
    ROOM_CLASS_BED_TYPES,
    ROOM_CLASS_FEATURES,
)
