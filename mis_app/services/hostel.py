# services/hostel.py

"""
Hostel Services

Handles the hostel layout and bed bookings:
- One-off creation of the block/floor/room/bed structure
- Booking validation (bed free, one active booking per academic year)
- Bed and room occupancy bookkeeping on confirm / check-out
"""

import logging

from django.db import transaction

from ..exceptions import BusinessRuleViolation, NotFound
from ..models import HostelBed, HostelBlock, HostelBooking, HostelFloor, HostelRoom, Student

logger = logging.getLogger(__name__)

BLOCK_COUNT = 30
MALE_BLOCKS = 15
FLOORS = [('GROUND', 0), ('FIRST', 1), ('SECOND', 2)]
ROOMS_PER_FLOOR = 30
BEDS_PER_ROOM = 2


def refresh_room_occupancy(room):
    occupied = room.beds.filter(is_occupied=True).count()
    room.current_occupancy = occupied
    room.is_available = occupied < BEDS_PER_ROOM
    room.status = 'OCCUPIED' if occupied == BEDS_PER_ROOM else 'AVAILABLE'
    room.save(update_fields=['current_occupancy', 'is_available', 'status'])
    return room


class HostelService:

    @staticmethod
    @transaction.atomic
    def initialize_structure():
        """30 blocks (1-15 male, 16-30 female), 3 floors, 30 rooms a floor, 2 beds a room."""
        if HostelBlock.objects.exists():
            raise BusinessRuleViolation('Hostel structure already initialized')

        floors = []
        for block_number in range(1, BLOCK_COUNT + 1):
            block = HostelBlock.objects.create(
                block_number=block_number,
                gender='MALE' if block_number <= MALE_BLOCKS else 'FEMALE',
            )
            for level, number in FLOORS:
                floors.append(HostelFloor.objects.create(block=block, floor_level=level, floor_number=number))

        HostelRoom.objects.bulk_create([
            HostelRoom(floor=floor, room_number=room_number)
            for floor in floors
            for room_number in range(1, ROOMS_PER_FLOOR + 1)
        ])
        HostelBed.objects.bulk_create([
            HostelBed(room_id=room_id, bed_number=bed_number)
            for room_id in HostelRoom.objects.values_list('id', flat=True)
            for bed_number in range(1, BEDS_PER_ROOM + 1)
        ])

        logger.info(
            f"Hostel initialised: {BLOCK_COUNT} blocks, {len(FLOORS)} floors each, "
            f"{ROOMS_PER_FLOOR} rooms per floor"
        )
        return f"{BLOCK_COUNT} blocks with {len(FLOORS)} floors and {ROOMS_PER_FLOOR} rooms per floor created"

    @staticmethod
    @transaction.atomic
    def create_booking(student_id, bed_id, academic_year, session, check_in_date, check_out_date,
                       amount=0, notes=None):
        student = Student.objects.filter(pk=student_id).first()
        if student is None:
            raise NotFound('Student')

        bed = HostelBed.objects.select_related('room__floor__block').filter(pk=bed_id).first()
        if bed is None or bed.is_occupied:
            raise BusinessRuleViolation('Bed is not available')

        if HostelBooking.objects.filter(
            student=student,
            academic_year=academic_year,
            status__in=['PENDING', 'CONFIRMED'],
        ).exists():
            raise BusinessRuleViolation('Student already has an active booking for this academic year')

        room = bed.room
        booking = HostelBooking.objects.create(
            student=student,
            block=room.floor.block,
            floor=room.floor,
            room=room,
            bed=bed,
            academic_year=academic_year,
            session=session,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            amount=amount or 0,
            notes=notes,
            status='PENDING',
        )
        logger.info(f"Booking {booking.id} created for {student.admission_no} on {bed}")
        return booking

    @staticmethod
    @transaction.atomic
    def confirm_booking(booking):
        if booking.status != 'PENDING':
            raise BusinessRuleViolation('Only pending bookings can be confirmed')

        booking.status = 'CONFIRMED'
        booking.save(update_fields=['status', 'updated_at'])

        HostelBed.objects.filter(pk=booking.bed_id).update(is_occupied=True)
        refresh_room_occupancy(booking.room)
        return booking

    @staticmethod
    @transaction.atomic
    def check_out(booking):
        if booking.status not in ('CONFIRMED', 'CHECKED_IN'):
            raise BusinessRuleViolation('Only confirmed or checked-in bookings can be checked out')

        booking.status = 'CHECKED_OUT'
        booking.save(update_fields=['status', 'updated_at'])

        HostelBed.objects.filter(pk=booking.bed_id).update(is_occupied=False)
        refresh_room_occupancy(booking.room)
        return booking

    @staticmethod
    def stats():
        total_rooms = HostelRoom.objects.count()
        occupied_rooms = HostelRoom.objects.filter(status='OCCUPIED').count()
        total_beds = HostelBed.objects.count()
        occupied_beds = HostelBed.objects.filter(is_occupied=True).count()
        total_bookings = HostelBooking.objects.count()
        confirmed = HostelBooking.objects.filter(status='CONFIRMED').count()

        return {
            'total_rooms': total_rooms,
            'occupied_rooms': occupied_rooms,
            'available_rooms': total_rooms - occupied_rooms,
            'occupancy_rate': round(occupied_rooms / total_rooms * 100) if total_rooms else 0,
            'total_beds': total_beds,
            'occupied_beds': occupied_beds,
            'available_beds': total_beds - occupied_beds,
            'total_bookings': total_bookings,
            'confirmed_bookings': confirmed,
            'pending_bookings': total_bookings - confirmed,
        }
