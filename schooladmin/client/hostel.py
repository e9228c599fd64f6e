from schooladmin.client.cache import FeatureClient, freeze

BASE = '/api/hostel'


class HostelKeys:
    all = ('hostel',)

    @classmethod
    def stats(cls):
        return cls.all + ('stats',)

    @classmethod
    def hostels(cls):
        return cls.all + ('hostels',)

    @classmethod
    def hostel_list(cls, filters=None):
        return cls.hostels() + ('list', freeze(filters))

    @classmethod
    def hostel_detail(cls, hostel_id):
        return cls.hostels() + ('detail', hostel_id)

    @classmethod
    def rooms(cls):
        return cls.all + ('rooms',)

    @classmethod
    def room_list(cls, filters=None):
        return cls.rooms() + ('list', freeze(filters))

    @classmethod
    def room_detail(cls, room_id):
        return cls.rooms() + ('detail', room_id)

    @classmethod
    def allocations(cls):
        return cls.all + ('allocations',)

    @classmethod
    def allocation_list(cls, filters=None):
        return cls.allocations() + ('list', freeze(filters))

    @classmethod
    def eligible(cls):
        return cls.all + ('eligible-students',)

    @classmethod
    def eligible_students(cls, filters=None):
        return cls.eligible() + (freeze(filters),)

    @classmethod
    def fees(cls):
        return cls.all + ('fees',)

    @classmethod
    def fee_list(cls, filters=None):
        return cls.fees() + ('list', freeze(filters))

    @classmethod
    def mess_menus(cls):
        return cls.all + ('mess-menu',)

    @classmethod
    def mess_menu(cls, filters=None):
        return cls.mess_menus() + (freeze(filters),)

    @classmethod
    def attendance(cls):
        return cls.all + ('attendance',)

    @classmethod
    def attendance_list(cls, filters=None):
        return cls.attendance() + ('list', freeze(filters))


class HostelClient(FeatureClient):
    keys = HostelKeys

    def stats(self):
        return self._query(HostelKeys.stats(), f'{BASE}/stats')

    def eligible_students(self, **filters):
        return self._query(HostelKeys.eligible_students(filters), f'{BASE}/eligible-students', params=filters)

    # Hostels

    def hostels(self, **filters):
        return self._query(HostelKeys.hostel_list(filters), f'{BASE}/hostels', params=filters)

    def hostel(self, hostel_id):
        return self._query(HostelKeys.hostel_detail(hostel_id), f'{BASE}/hostels/{hostel_id}')

    def create_hostel(self, payload):
        return self._mutate('POST', f'{BASE}/hostels', payload, invalidate=(HostelKeys.hostels(), HostelKeys.stats()))

    def update_hostel(self, hostel_id, payload):
        return self._mutate('PUT', f'{BASE}/hostels/{hostel_id}', payload,
                            invalidate=(HostelKeys.hostels(), HostelKeys.stats()))

    def delete_hostel(self, hostel_id):
        return self._mutate('DELETE', f'{BASE}/hostels/{hostel_id}',
                            invalidate=(HostelKeys.hostels(), HostelKeys.rooms(), HostelKeys.stats(),
                                        HostelKeys.mess_menus()))

    # Rooms

    def rooms(self, **filters):
        return self._query(HostelKeys.room_list(filters), f'{BASE}/rooms', params=filters)

    def room(self, room_id):
        return self._query(HostelKeys.room_detail(room_id), f'{BASE}/rooms/{room_id}')

    def create_room(self, payload):
        return self._mutate('POST', f'{BASE}/rooms', payload, invalidate=(HostelKeys.rooms(), HostelKeys.stats()))

    def update_room(self, room_id, payload):
        return self._mutate('PUT', f'{BASE}/rooms/{room_id}', payload,
                            invalidate=(HostelKeys.rooms(), HostelKeys.stats()))

    def delete_room(self, room_id):
        return self._mutate('DELETE', f'{BASE}/rooms/{room_id}',
                            invalidate=(HostelKeys.rooms(), HostelKeys.stats()))

    # Allocations

    def allocations(self, **filters):
        return self._query(HostelKeys.allocation_list(filters), f'{BASE}/allocations', params=filters)

    def _occupancy_prefixes(self):
        return (HostelKeys.allocations(), HostelKeys.rooms(), HostelKeys.hostels(), HostelKeys.stats(),
                HostelKeys.eligible())

    def allocate(self, student_id, room_id, bed_number, start_date=None):
        payload = {'studentId': student_id, 'roomId': room_id, 'bedNumber': bed_number}
        if start_date:
            payload['startDate'] = start_date
        return self._mutate('POST', f'{BASE}/allocations', payload, invalidate=self._occupancy_prefixes())

    def vacate(self, allocation_id, end_date=None):
        payload = {'endDate': end_date} if end_date else {}
        return self._mutate('PATCH', f'{BASE}/allocations/{allocation_id}/vacate', payload,
                            invalidate=self._occupancy_prefixes())

    def transfer(self, allocation_id, new_room_id, bed_number):
        return self._mutate('PATCH', f'{BASE}/allocations/{allocation_id}/transfer',
                            {'newRoomId': new_room_id, 'bedNumber': bed_number},
                            invalidate=self._occupancy_prefixes())

    # Fees

    def fees(self, **filters):
        return self._query(HostelKeys.fee_list(filters), f'{BASE}/fees', params=filters)

    def create_fee(self, payload):
        return self._mutate('POST', f'{BASE}/fees', payload, invalidate=(HostelKeys.fees(), HostelKeys.stats()))

    def pay_fee(self, fee_id, transaction_id=None):
        payload = {'transactionId': transaction_id} if transaction_id else {}
        return self._mutate('PATCH', f'{BASE}/fees/{fee_id}/pay', payload,
                            invalidate=(HostelKeys.fees(), HostelKeys.stats()))

    def bulk_generate_fees(self, month, fee_type, due_date, amount):
        return self._mutate('POST', f'{BASE}/fees/bulk-generate',
                            {'month': month, 'feeType': fee_type, 'dueDate': due_date, 'amount': amount},
                            invalidate=(HostelKeys.fees(), HostelKeys.stats()))

    # Mess menu

    def mess_menu(self, **filters):
        return self._query(HostelKeys.mess_menu(filters), f'{BASE}/mess-menu', params=filters)

    def update_mess_menu(self, payload):
        return self._mutate('PUT', f'{BASE}/mess-menu', payload, invalidate=(HostelKeys.mess_menus(),))

    # Attendance

    def attendance(self, **filters):
        return self._query(HostelKeys.attendance_list(filters), f'{BASE}/attendance', params=filters)

    def mark_attendance(self, payload):
        return self._mutate('POST', f'{BASE}/attendance', payload,
                            invalidate=(HostelKeys.attendance(), HostelKeys.stats()))

    def mark_attendance_bulk(self, date, records):
        return self._mutate('POST', f'{BASE}/attendance/bulk', {'date': date, 'records': list(records)},
                            invalidate=(HostelKeys.attendance(), HostelKeys.stats()))
