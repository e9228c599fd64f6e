import logging
import uuid
from datetime import timedelta

from flask import request, current_app
from sqlalchemy import or_, func

from schooladmin import app, db
from schooladmin.api import (ApiError, ValidationError, ok, json_body, get_or_404,
                             require, as_text, one_of, as_number, as_list, parse_date, parse_time)
from schooladmin.auth import crud_required, current_username, record_audit
from schooladmin.models import (Hostel, Room, RoomAllocation, HostelFee, MessMenu, HostelAttendance,
                                Student, User, utcnow)

logger = logging.getLogger(__name__)

HOSTEL_TYPES = ('boys', 'girls')
HOSTEL_STATUSES = ('active', 'inactive')
ROOM_TYPES = ('single', 'double', 'triple', 'dormitory')
ROOM_STATUSES = ('available', 'full', 'maintenance')
ALLOCATION_STATUSES = ('active', 'vacated', 'transferred')
FEE_TYPES = ('room_rent', 'mess_fee', 'deposit', 'laundry', 'other')
FEE_STATUSES = ('pending', 'paid', 'overdue')
MEAL_TYPES = ('breakfast', 'lunch', 'snacks', 'dinner')
ATTENDANCE_STATUSES = ('present', 'absent', 'leave', 'late')
# Hostel type -> student gender it houses
HOSTEL_GENDER = {'boys': 'male', 'girls': 'female'}


def _arg(name):
    return request.args.get(name, '').strip()


def _today():
    return utcnow().date()


def active_allocation_for(student_id):
    return RoomAllocation.query.filter_by(student_id=student_id, status='active').first()


def _check_room_for(student, room, bed_number):
    """Raise unless `student` can take bed `bed_number` in `room`."""
    hostel = room.hostel
    if hostel.status != 'active':
        raise ApiError(400, f"{hostel.name} is not accepting residents")
    wanted_gender = HOSTEL_GENDER.get(hostel.type)
    if student.gender and wanted_gender and student.gender != wanted_gender:
        raise ApiError(400, f"{student.name} cannot be placed in a {hostel.type} hostel")
    if room.status == 'maintenance':
        raise ApiError(400, f"Room {room.room_number} is under maintenance")
    if room.occupancy >= room.capacity:
        raise ApiError(400, f"Room {room.room_number} is full")
    bed = as_number(bed_number, 'bedNumber', minimum=1, maximum=room.capacity, integer=True)
    taken = RoomAllocation.query.filter_by(room_id=room.id, bed_number=bed, status='active').first()
    if taken:
        raise ApiError(409, f"Bed {bed} in room {room.room_number} is already taken")
    return bed


def _occupy(room, delta):
    room.occupancy = max((room.occupancy or 0) + delta, 0)
    room.hostel.occupancy = max((room.hostel.occupancy or 0) + delta, 0)
    room.refresh_status()


# --- Eligible students ---

@app.route('/api/hostel/eligible-students')
@crud_required('hostel_allocation', 'read')
def hostel_eligible_students():
    allocated = db.select(RoomAllocation.student_id).where(RoomAllocation.status == 'active')
    q = Student.query.filter(Student.status == 'active', Student.id.notin_(allocated))
    if _arg('gender'):
        q = q.filter(Student.gender == _arg('gender'))
    if _arg('search'):
        like = f"%{_arg('search')}%"
        q = q.filter(or_(Student.name.ilike(like), Student.admission_number.ilike(like), Student.class_name.ilike(like)))
    students = q.order_by(Student.class_name, Student.section, Student.roll_number).all()
    return ok([{
        "id": s.id,
        "name": s.name,
        "class": s.class_name,
        "section": s.section,
        "rollNumber": s.roll_number,
        "admissionNumber": s.admission_number,
        "gender": s.gender,
        "photoUrl": s.photo_url,
    } for s in students])


# --- Hostels ---

def _apply_hostel_fields(hostel, payload):
    if 'name' in payload:
        require(payload, 'name')
        hostel.name = as_text(payload, 'name')
    if 'type' in payload:
        hostel.type = one_of(payload['type'], HOSTEL_TYPES, 'type')
    if 'capacity' in payload:
        hostel.capacity = as_number(payload['capacity'], 'capacity', minimum=0, integer=True)
    if 'floors' in payload:
        hostel.floors = as_number(payload['floors'], 'floors', minimum=1, integer=True)
    if 'status' in payload:
        hostel.status = one_of(payload['status'], HOSTEL_STATUSES, 'status')
    for key, attr in (('address', 'address'), ('contactNumber', 'contact_number'), ('email', 'email')):
        if key in payload:
            setattr(hostel, attr, payload[key])
    if 'amenities' in payload:
        hostel.amenities = [str(a) for a in as_list(payload['amenities'], 'amenities')]
    if 'wardenId' in payload:
        if payload['wardenId']:
            warden = db.session.get(User, payload['wardenId'])
            if warden is None or warden.role != 'warden':
                raise ValidationError("Unknown warden", {"wardenId": ["Must be a user with the warden role"]})
            hostel.warden_id = warden.id
            hostel.warden_name = warden.display_name
        else:
            hostel.warden_id = None
            hostel.warden_name = None


@app.route('/api/hostel/hostels')
@crud_required('hostel', 'read')
def list_hostels():
    q = Hostel.query
    if _arg('type'):
        q = q.filter(Hostel.type == _arg('type'))
    if _arg('status'):
        q = q.filter(Hostel.status == _arg('status'))
    return ok([h.to_dict() for h in q.order_by(Hostel.name).all()])


@app.route('/api/hostel/hostels/<hostel_id>')
@crud_required('hostel', 'read')
def get_hostel(hostel_id):
    return ok(get_or_404(Hostel, hostel_id, "Hostel").to_dict())


@app.route('/api/hostel/hostels', methods=['POST'])
@crud_required('hostel', 'create')
def create_hostel():
    payload = json_body()
    require(payload, 'name', 'type', 'capacity')
    if Hostel.query.filter(func.lower(Hostel.name) == as_text(payload, 'name').lower()).first():
        raise ApiError(409, "A hostel with this name already exists")
    hostel = Hostel(occupancy=0, status='active', amenities=[])
    _apply_hostel_fields(hostel, payload)
    db.session.add(hostel)
    db.session.commit()
    logger.info(f"Hostel '{hostel.name}' created")
    record_audit('hostel_create', hostel.name, f"type={hostel.type},capacity={hostel.capacity}")
    return ok(hostel.to_dict(), 201)


@app.route('/api/hostel/hostels/<hostel_id>', methods=['PUT'])
@crud_required('hostel', 'update')
def update_hostel(hostel_id):
    hostel = get_or_404(Hostel, hostel_id, "Hostel")
    payload = json_body()
    if 'type' in payload and payload['type'] != hostel.type and hostel.occupancy:
        raise ApiError(409, "Cannot change the type of a hostel with residents")
    _apply_hostel_fields(hostel, payload)
    db.session.commit()
    record_audit('hostel_update', hostel.name)
    return ok(hostel.to_dict())


@app.route('/api/hostel/hostels/<hostel_id>', methods=['DELETE'])
@crud_required('hostel', 'delete')
def delete_hostel(hostel_id):
    hostel = get_or_404(Hostel, hostel_id, "Hostel")
    if RoomAllocation.query.filter_by(hostel_id=hostel.id, status='active').first():
        raise ApiError(409, f"{hostel.name} still has residents")
    name = hostel.name
    MessMenu.query.filter_by(hostel_id=hostel.id).delete(synchronize_session=False)
    db.session.delete(hostel)
    db.session.commit()
    logger.info(f"Hostel '{name}' deleted")
    record_audit('hostel_delete', name)
    return ok({"success": True})


# --- Rooms ---

def _apply_room_fields(room, payload):
    if 'roomNumber' in payload:
        require(payload, 'roomNumber')
        room.room_number = str(payload['roomNumber']).strip()
    if 'floor' in payload:
        room.floor = as_number(payload['floor'], 'floor', minimum=0, integer=True)
    if 'type' in payload:
        room.type = one_of(payload['type'], ROOM_TYPES, 'type')
    if 'capacity' in payload:
        capacity = as_number(payload['capacity'], 'capacity', minimum=1, integer=True)
        if capacity < (room.occupancy or 0):
            raise ValidationError("Capacity below occupancy",
                                  {"capacity": [f"{room.occupancy} students already live in this room"]})
        highest_bed = db.session.query(func.max(RoomAllocation.bed_number)).filter(
            RoomAllocation.room_id == room.id, RoomAllocation.status == 'active').scalar()
        if highest_bed and capacity < highest_bed:
            raise ValidationError("Capacity below an occupied bed",
                                  {"capacity": [f"Bed {highest_bed} is occupied; vacate or transfer it first"]})
        room.capacity = capacity
    if 'amenities' in payload:
        room.amenities = [str(a) for a in as_list(payload['amenities'], 'amenities')]
    if 'monthlyRent' in payload:
        room.monthly_rent = as_number(payload['monthlyRent'], 'monthlyRent', minimum=0)
    if 'status' in payload:
        status = one_of(payload['status'], ROOM_STATUSES, 'status')
        room.status = 'maintenance' if status == 'maintenance' else 'available'
    room.refresh_status()


@app.route('/api/hostel/rooms')
@crud_required('hostel', 'read')
def list_rooms():
    q = Room.query.join(Hostel)
    if _arg('hostelId'):
        q = q.filter(Room.hostel_id == _arg('hostelId'))
    if _arg('type'):
        q = q.filter(Room.type == _arg('type'))
    if _arg('status'):
        q = q.filter(Room.status == _arg('status'))
    floor = request.args.get('floor', type=int)
    if floor is not None:
        q = q.filter(Room.floor == floor)
    return ok([r.to_dict() for r in q.order_by(Hostel.name, Room.floor, Room.room_number).all()])


@app.route('/api/hostel/rooms/<room_id>')
@crud_required('hostel', 'read')
def get_room(room_id):
    return ok(get_or_404(Room, room_id, "Room").to_dict())


@app.route('/api/hostel/rooms', methods=['POST'])
@crud_required('hostel', 'create')
def create_room():
    payload = json_body()
    require(payload, 'hostelId', 'roomNumber', 'type', 'capacity')
    hostel = get_or_404(Hostel, payload['hostelId'], "Hostel")
    number = str(payload['roomNumber']).strip()
    if Room.query.filter_by(hostel_id=hostel.id, room_number=number).first():
        raise ApiError(409, f"Room {number} already exists in {hostel.name}")
    room = Room(hostel=hostel, occupancy=0, status='available', amenities=[])
    _apply_room_fields(room, payload)
    db.session.add(room)
    db.session.commit()
    logger.info(f"Room {room.room_number} added to '{hostel.name}'")
    record_audit('room_create', f"{hostel.name}/{room.room_number}", f"capacity={room.capacity}")
    return ok(room.to_dict(), 201)


@app.route('/api/hostel/rooms/<room_id>', methods=['PUT'])
@crud_required('hostel', 'update')
def update_room(room_id):
    room = get_or_404(Room, room_id, "Room")
    payload = json_body()
    if 'roomNumber' in payload:
        number = str(payload['roomNumber']).strip()
        clash = Room.query.filter(Room.hostel_id == room.hostel_id, Room.room_number == number, Room.id != room.id).first()
        if clash:
            raise ApiError(409, f"Room {number} already exists in {room.hostel.name}")
    _apply_room_fields(room, payload)
    db.session.commit()
    record_audit('room_update', f"{room.hostel.name}/{room.room_number}", f"status={room.status}")
    return ok(room.to_dict())


@app.route('/api/hostel/rooms/<room_id>', methods=['DELETE'])
@crud_required('hostel', 'delete')
def delete_room(room_id):
    room = get_or_404(Room, room_id, "Room")
    if room.occupancy or RoomAllocation.query.filter_by(room_id=room.id, status='active').first():
        raise ApiError(409, f"Room {room.room_number} is occupied")
    label = f"{room.hostel.name}/{room.room_number}"
    db.session.delete(room)
    db.session.commit()
    logger.info(f"Room {label} deleted")
    record_audit('room_delete', label)
    return ok({"success": True})


# --- Allocations ---

@app.route('/api/hostel/allocations')
@crud_required('hostel_allocation', 'read')
def list_allocations():
    q = RoomAllocation.query.join(Student, RoomAllocation.student_id == Student.id)
    if _arg('hostelId'):
        q = q.filter(RoomAllocation.hostel_id == _arg('hostelId'))
    if _arg('roomId'):
        q = q.filter(RoomAllocation.room_id == _arg('roomId'))
    if _arg('status'):
        q = q.filter(RoomAllocation.status == one_of(_arg('status'), ALLOCATION_STATUSES, 'status'))
    if _arg('search'):
        like = f"%{_arg('search')}%"
        q = q.filter(or_(Student.name.ilike(like), Student.admission_number.ilike(like)))
    return ok([a.to_dict() for a in q.order_by(RoomAllocation.created_at.desc()).all()])


@app.route('/api/hostel/allocations', methods=['POST'])
@crud_required('hostel_allocation', 'create')
def create_allocation():
    payload = json_body()
    require(payload, 'studentId', 'roomId', 'bedNumber')
    student = get_or_404(Student, payload['studentId'], "Student")
    if student.status != 'active':
        raise ApiError(400, f"{student.name} is not an active student")
    if active_allocation_for(student.id):
        logger.warning(f"Rejected second allocation for student {student.admission_number}")
        raise ApiError(409, f"{student.name} already has a room")
    room = get_or_404(Room, payload['roomId'], "Room")
    bed = _check_room_for(student, room, payload['bedNumber'])
    allocation = RoomAllocation(
        room_id=room.id,
        hostel_id=room.hostel_id,
        student_id=student.id,
        bed_number=bed,
        start_date=parse_date(payload.get('startDate'), 'startDate') or _today(),
        status='active',
    )
    _occupy(room, 1)
    db.session.add(allocation)
    db.session.commit()
    logger.info(f"Student {student.admission_number} allocated to {room.hostel.name}/{room.room_number} bed {bed}")
    record_audit('allocation_create', student.admission_number, f"room={room.id},bed={bed}")
    return ok(allocation.to_dict(), 201)


@app.route('/api/hostel/allocations/<allocation_id>/vacate', methods=['PATCH'])
@crud_required('hostel_allocation', 'update')
def vacate_allocation(allocation_id):
    allocation = get_or_404(RoomAllocation, allocation_id, "Allocation")
    if allocation.status != 'active':
        raise ApiError(400, "Only active allocations can be vacated")
    payload = json_body()
    allocation.status = 'vacated'
    allocation.end_date = parse_date(payload.get('endDate'), 'endDate') or _today()
    _occupy(allocation.room, -1)
    db.session.commit()
    logger.info(f"Allocation {allocation.id} vacated")
    record_audit('allocation_vacate', allocation.student.admission_number, f"room={allocation.room_id}")
    return ok(allocation.to_dict())


@app.route('/api/hostel/allocations/<allocation_id>/transfer', methods=['PATCH'])
@crud_required('hostel_allocation', 'update')
def transfer_allocation(allocation_id):
    allocation = get_or_404(RoomAllocation, allocation_id, "Allocation")
    if allocation.status != 'active':
        raise ApiError(400, "Only active allocations can be transferred")
    payload = json_body()
    require(payload, 'newRoomId', 'bedNumber')
    new_room = get_or_404(Room, payload['newRoomId'], "Room")
    if new_room.id == allocation.room_id:
        raise ApiError(400, "Student is already in this room")
    bed = _check_room_for(allocation.student, new_room, payload['bedNumber'])
    today = _today()
    allocation.status = 'transferred'
    allocation.end_date = today
    _occupy(allocation.room, -1)
    moved = RoomAllocation(
        room_id=new_room.id,
        hostel_id=new_room.hostel_id,
        student_id=allocation.student_id,
        bed_number=bed,
        start_date=today,
        status='active',
    )
    _occupy(new_room, 1)
    db.session.add(moved)
    db.session.commit()
    logger.info(f"Allocation {allocation.id} transferred to room {new_room.room_number}")
    record_audit('allocation_transfer', allocation.student.admission_number,
                 f"from={allocation.room_id},to={new_room.id},bed={bed}")
    return ok(moved.to_dict())


# --- Fees ---

def _overdue_cutoff():
    return _today() - timedelta(days=current_app.config.get('HOSTEL_FEE_OVERDUE_GRACE_DAYS', 0))


@app.route('/api/hostel/fees')
@crud_required('hostel_fee', 'read')
def list_hostel_fees():
    q = HostelFee.query
    if _arg('studentId'):
        q = q.filter(HostelFee.student_id == _arg('studentId'))
    if _arg('feeType'):
        q = q.filter(HostelFee.fee_type == _arg('feeType'))
    if _arg('month'):
        q = q.filter(HostelFee.month == _arg('month'))
    status = _arg('status')
    if status:
        one_of(status, FEE_STATUSES, 'status')
    if status == 'overdue':
        q = q.filter(HostelFee.status == 'pending', HostelFee.due_date < _overdue_cutoff())
    elif status == 'pending':
        q = q.filter(HostelFee.status == 'pending', HostelFee.due_date >= _overdue_cutoff())
    elif status:
        q = q.filter(HostelFee.status == status)
    return ok([f.to_dict() for f in q.order_by(HostelFee.created_at.desc()).all()])


def _parse_month(value):
    text = str(value or '').strip()
    if len(text) != 7 or text[4] != '-' or not text[:4].isdigit() or not text[5:].isdigit() \
            or not 1 <= int(text[5:]) <= 12:
        raise ValidationError("Invalid month", {"month": ["Expected YYYY-MM"]})
    return text


@app.route('/api/hostel/fees', methods=['POST'])
@crud_required('hostel_fee', 'create')
def create_hostel_fee():
    payload = json_body()
    require(payload, 'studentId', 'feeType', 'amount', 'month', 'dueDate')
    student = get_or_404(Student, payload['studentId'], "Student")
    allocation = active_allocation_for(student.id)
    if allocation is None:
        raise ApiError(400, f"{student.name} does not have a hostel room")
    fee = HostelFee(
        student_id=student.id,
        allocation_id=allocation.id,
        fee_type=one_of(payload['feeType'], FEE_TYPES, 'feeType'),
        amount=as_number(payload['amount'], 'amount', minimum=0),
        month=_parse_month(payload['month']),
        due_date=parse_date(payload['dueDate'], 'dueDate'),
        status='pending',
    )
    db.session.add(fee)
    db.session.commit()
    logger.info(f"Hostel fee {fee.fee_type} {fee.month} raised for {student.admission_number}")
    record_audit('hostel_fee_create', student.admission_number, f"type={fee.fee_type},month={fee.month},amount={fee.amount}")
    return ok(fee.to_dict(), 201)


@app.route('/api/hostel/fees/<fee_id>/pay', methods=['PATCH'])
@crud_required('hostel_fee', 'update')
def pay_hostel_fee(fee_id):
    fee = get_or_404(HostelFee, fee_id, "Fee")
    if fee.status == 'paid':
        raise ApiError(400, "Fee is already paid")
    payload = json_body()
    fee.status = 'paid'
    fee.paid_date = parse_date(payload.get('paidDate'), 'paidDate') or _today()
    fee.transaction_id = payload.get('transactionId') or f"TXN{uuid.uuid4().hex[:12].upper()}"
    db.session.commit()
    logger.info(f"Hostel fee {fee.id} paid ({fee.transaction_id})")
    record_audit('hostel_fee_pay', fee.id, f"txn={fee.transaction_id}")
    return ok(fee.to_dict())


@app.route('/api/hostel/fees/bulk-generate', methods=['POST'])
@crud_required('hostel_fee', 'create')
def bulk_generate_hostel_fees():
    payload = json_body()
    require(payload, 'month', 'feeType', 'dueDate', 'amount')
    month = _parse_month(payload['month'])
    fee_type = one_of(payload['feeType'], FEE_TYPES, 'feeType')
    amount = as_number(payload['amount'], 'amount', minimum=0)
    due = parse_date(payload['dueDate'], 'dueDate')
    existing = {sid for (sid,) in db.session.query(HostelFee.student_id)
                .filter(HostelFee.month == month, HostelFee.fee_type == fee_type)}
    created = 0
    for allocation in RoomAllocation.query.filter_by(status='active').all():
        if allocation.student_id in existing:
            continue
        db.session.add(HostelFee(student_id=allocation.student_id, allocation_id=allocation.id, fee_type=fee_type,
                                 amount=amount, month=month, due_date=due, status='pending'))
        existing.add(allocation.student_id)
        created += 1
    db.session.commit()
    logger.info(f"Generated {created} {fee_type} fees for {month}")
    record_audit('hostel_fee_bulk_generate', month, f"type={fee_type},created={created}")
    return ok({"created": created}, 201)


# --- Mess menu ---

@app.route('/api/hostel/mess-menu')
@crud_required('mess_menu', 'read')
def list_mess_menu():
    q = MessMenu.query
    if _arg('hostelId'):
        q = q.filter(MessMenu.hostel_id == _arg('hostelId'))
    day = request.args.get('dayOfWeek', type=int)
    if day is not None:
        q = q.filter(MessMenu.day_of_week == day)
    if _arg('mealType'):
        q = q.filter(MessMenu.meal_type == _arg('mealType'))
    order = [MessMenu.hostel_id, MessMenu.day_of_week]
    menus = sorted(q.order_by(*order).all(), key=lambda m: (m.hostel_id, m.day_of_week, MEAL_TYPES.index(m.meal_type)))
    return ok([m.to_dict() for m in menus])


@app.route('/api/hostel/mess-menu', methods=['PUT'])
@crud_required('mess_menu', 'update')
def upsert_mess_menu():
    payload = json_body()
    require(payload, 'hostelId', 'dayOfWeek', 'mealType')
    hostel = get_or_404(Hostel, payload['hostelId'], "Hostel")
    day = as_number(payload['dayOfWeek'], 'dayOfWeek', minimum=0, maximum=6, integer=True)
    meal = one_of(payload['mealType'], MEAL_TYPES, 'mealType')
    items = [str(i).strip() for i in as_list(payload.get('items'), 'items') if str(i).strip()]
    if not items:
        raise ValidationError("Menu is empty", {"items": ["Add at least one item"]})
    menu = MessMenu.query.filter_by(hostel_id=hostel.id, day_of_week=day, meal_type=meal).first()
    if menu is None:
        menu = MessMenu(hostel_id=hostel.id, day_of_week=day, meal_type=meal)
        db.session.add(menu)
    menu.items = items
    menu.special_diet = payload.get('specialDiet')
    db.session.commit()
    record_audit('mess_menu_update', hostel.name, f"day={day},meal={meal}")
    return ok(menu.to_dict())


# --- Attendance ---

def _mark_attendance(student_id, day, status, check_in=None, check_out=None, remarks=None):
    """Upsert one student's attendance for `day`. Returns None when the student has no room."""
    allocation = active_allocation_for(student_id)
    if allocation is None:
        return None
    record = HostelAttendance.query.filter_by(student_id=student_id, date=day).first()
    if record is None:
        record = HostelAttendance(student_id=student_id, date=day)
        db.session.add(record)
    record.allocation_id = allocation.id
    record.hostel_id = allocation.hostel_id
    record.status = status
    record.check_in = check_in
    record.check_out = check_out
    record.remarks = remarks
    record.marked_by = current_username()
    return record


@app.route('/api/hostel/attendance')
@crud_required('hostel_attendance', 'read')
def list_hostel_attendance():
    q = HostelAttendance.query
    if _arg('hostelId'):
        q = q.filter(HostelAttendance.hostel_id == _arg('hostelId'))
    if _arg('date'):
        q = q.filter(HostelAttendance.date == parse_date(_arg('date'), 'date'))
    if _arg('status'):
        q = q.filter(HostelAttendance.status == _arg('status'))
    if _arg('studentId'):
        q = q.filter(HostelAttendance.student_id == _arg('studentId'))
    return ok([a.to_dict() for a in q.order_by(HostelAttendance.date.desc(), HostelAttendance.created_at).all()])


@app.route('/api/hostel/attendance', methods=['POST'])
@crud_required('hostel_attendance', 'create')
def mark_hostel_attendance():
    payload = json_body()
    require(payload, 'studentId', 'date', 'status')
    student = get_or_404(Student, payload['studentId'], "Student")
    day = parse_date(payload['date'], 'date')
    status = one_of(payload['status'], ATTENDANCE_STATUSES, 'status')
    check_in = parse_time(payload['checkIn'], 'checkIn') if payload.get('checkIn') else None
    check_out = parse_time(payload['checkOut'], 'checkOut') if payload.get('checkOut') else None
    record = _mark_attendance(student.id, day, status, check_in, check_out, payload.get('remarks'))
    if record is None:
        raise ApiError(400, f"{student.name} does not have a hostel room")
    db.session.commit()
    return ok(record.to_dict(), 201)


@app.route('/api/hostel/attendance/bulk', methods=['POST'])
@crud_required('hostel_attendance', 'create')
def bulk_mark_hostel_attendance():
    payload = json_body()
    require(payload, 'date')
    day = parse_date(payload['date'], 'date')
    records = as_list(payload.get('records'), 'records')
    marked = 0
    skipped = 0
    for i, item in enumerate(records):
        if not isinstance(item, dict) or not item.get('studentId'):
            raise ValidationError("Invalid record", {f"records[{i}]": ["studentId is required"]})
        status = one_of(item.get('status'), ATTENDANCE_STATUSES, f"records[{i}].status")
        if _mark_attendance(item['studentId'], day, status, remarks=item.get('remarks')) is None:
            skipped += 1
        else:
            marked += 1
    db.session.commit()
    logger.info(f"Hostel attendance for {day}: {marked} marked, {skipped} skipped")
    record_audit('hostel_attendance_bulk', day.isoformat(), f"marked={marked},skipped={skipped}")
    return ok({"success": True, "marked": marked, "skipped": skipped})


# --- Stats ---

@app.route('/api/hostel/stats')
@crud_required('hostel', 'read')
def hostel_stats():
    total_beds = db.session.query(func.coalesce(func.sum(Room.capacity), 0)).scalar() or 0
    occupied = db.session.query(func.coalesce(func.sum(Room.occupancy), 0)).scalar() or 0
    open_fees = HostelFee.query.filter(HostelFee.status.in_(('pending', 'overdue')))
    today = _today()
    return ok({
        "totalHostels": Hostel.query.count(),
        "totalRooms": Room.query.count(),
        "totalBeds": int(total_beds),
        "occupiedBeds": int(occupied),
        "availableBeds": int(total_beds) - int(occupied),
        "totalStudents": RoomAllocation.query.filter_by(status='active').count(),
        "pendingFees": open_fees.count(),
        "pendingFeesAmount": float(sum(f.amount for f in open_fees.all())),
        "todayPresent": HostelAttendance.query.filter_by(date=today, status='present').count(),
        "todayAbsent": HostelAttendance.query.filter_by(date=today, status='absent').count(),
    })
