from schooladmin import app, db
from schooladmin.models import (User, Student, ParentStudentLink, Alumni, AlumniAchievement, AlumniEvent,
                                Announcement, Circular, Survey, EmergencyAlert, SchoolEvent, Exam, ExamSubject,
                                StudentMark, GradeScale, Hostel, Room, RoomAllocation, HostelFee, MessMenu, utcnow)
from schooladmin.grading import DEFAULT_GRADE_RANGES, percent, letter_grade
from werkzeug.security import generate_password_hash
from datetime import datetime, timedelta, date
import random

CLASSES = ['Class 10', 'Class 11', 'Class 12']
SECTIONS = ['A', 'B']
EVERYONE = {"type": "all", "roles": [], "classIds": [], "sectionIds": [], "userIds": []}


def seed():
    with app.app_context():
        print("Seeding database...")
        today = date.today()

        # Staff accounts
        accounts = [
            ('admin', 'admin', 'Administrator'),
            ('office', 'staff', 'Office Staff'),
            ('teacher1', 'teacher', 'Anita Rao'),
            ('warden1', 'warden', 'Vikram Singh'),
        ]
        for username, role, name in accounts:
            if not User.query.filter_by(username=username).first():
                db.session.add(User(username=username, password_hash=generate_password_hash(username),
                                    role=role, name=name))
        db.session.commit()
        print(f"Ensured {len(accounts)} staff accounts.")

        # Students
        roll = 0
        for class_name in CLASSES:
            for section in SECTIONS:
                for i in range(1, 6):
                    roll += 1
                    admission = f"ADM2024{roll:03d}"
                    if Student.query.filter_by(admission_number=admission).first():
                        continue
                    db.session.add(Student(
                        admission_number=admission,
                        name=f"Student {roll}",
                        email=f"student{roll}@school.test",
                        gender='male' if roll % 2 else 'female',
                        class_name=class_name,
                        section=section,
                        roll_number=i,
                        status='active',
                    ))
        db.session.commit()
        students = Student.query.all()
        print(f"Created {len(students)} students.")

        first = students[0]
        if not User.query.filter_by(username='parent1').first():
            db.session.add(User(username='parent1', password_hash=generate_password_hash('parent1'),
                                role='parent', name='Parent One'))
            db.session.add(ParentStudentLink(parent_username='parent1', student_id=first.id))
        if not User.query.filter_by(username='student1').first():
            db.session.add(User(username='student1', password_hash=generate_password_hash('student1'),
                                role='student', name=first.name, student_id=first.id))
        db.session.commit()

        # Alumni
        if Alumni.query.count() == 0:
            for i in range(1, 9):
                alumnus = Alumni(
                    name=f"Alumnus {i}",
                    email=f"alumnus{i}@alumni.test",
                    batch=str(2015 + i % 4),
                    class_name='Class 12',
                    current_city=random.choice(['Mumbai', 'Pune', 'Bengaluru', 'Delhi']),
                    current_country='India',
                    occupation=random.choice(['Engineer', 'Doctor', 'Designer', 'Teacher']),
                    is_verified=i % 3 != 0,
                )
                db.session.add(alumnus)
                db.session.flush()
                if i % 2 == 0:
                    db.session.add(AlumniAchievement(alumni_id=alumnus.id, title=f"Award {i}", category='professional',
                                                     date=today - timedelta(days=30 * i), is_published=True))
            db.session.add(AlumniEvent(title="Annual Reunion", type='reunion', date=utcnow() + timedelta(days=45),
                                       venue="Main Auditorium", target_batches=[], max_capacity=200))
            db.session.commit()
            print("Created alumni, achievements and a reunion.")

        # Communication
        if Announcement.query.count() == 0:
            now = utcnow()
            db.session.add(Announcement(title="Welcome back", content="Classes resume on Monday.", status='published',
                                        priority='normal', target=EVERYONE, published_at=now,
                                        created_by='admin', created_by_name='Administrator'))
            db.session.add(Circular(reference_number=f"CIR/{today.year}/001", title="Fee schedule",
                                    content="Term fees are due by the 10th.", status='published', target=EVERYONE,
                                    published_at=now, created_by='office', created_by_name='Office Staff'))
            db.session.add(Survey(title="Canteen feedback", status='active', target=EVERYONE,
                                  questions=[{"id": "q1", "text": "Rate the food", "type": "rating", "required": True,
                                              "options": []}],
                                  total_targeted=User.query.count(), created_by='admin', created_by_name='Administrator'))
            db.session.add(EmergencyAlert(title="Fire drill", message="Assemble at the playground.", severity='info',
                                          status='resolved', target=EVERYONE, channels=['app'], resolved_at=now,
                                          resolved_by='admin', created_by='admin', created_by_name='Administrator'))
            db.session.add(SchoolEvent(title="Sports Day", type='sports', target=EVERYONE, venue="Playground",
                                       starts_at=datetime.combine(today + timedelta(days=20), datetime.min.time()),
                                       registration_required=True, max_attendees=300,
                                       created_by='teacher1', created_by_name='Anita Rao'))
            db.session.commit()
            print("Created announcement, circular, survey, alert and event.")

        # Exams
        if not GradeScale.query.first():
            db.session.add(GradeScale(name="CBSE 9-point", is_default=True, ranges=DEFAULT_GRADE_RANGES))
            db.session.commit()
        if Exam.query.count() == 0:
            exam = Exam(name="Half Yearly Examination", type='half_yearly', academic_year=f"{today.year}-{str(today.year + 1)[2:]}",
                        term='Term 1', applicable_classes=CLASSES, start_date=today - timedelta(days=14),
                        end_date=today - timedelta(days=7), status='completed')
            for pos, (name, code) in enumerate([('Mathematics', 'MATH'), ('Science', 'SCI'), ('English', 'ENG')]):
                exam.subjects.append(ExamSubject(name=name, code=code, max_marks=100, passing_marks=33, position=pos))
            db.session.add(exam)
            db.session.flush()
            for student in students:
                for subject in exam.subjects:
                    obtained = random.randint(25, 98)
                    db.session.add(StudentMark(exam_id=exam.id, subject_id=subject.id, student_id=student.id,
                                               marks_obtained=obtained, max_marks=subject.max_marks,
                                               grade=letter_grade(percent(obtained, subject.max_marks)),
                                               entered_by='teacher1'))
            db.session.commit()
            print("Created an exam with marks.")

        # Hostel
        if Hostel.query.count() == 0:
            warden = User.query.filter_by(username='warden1').first()
            boys = Hostel(name="Tagore House", type='boys', capacity=8, floors=2, status='active',
                          warden_id=warden.id, warden_name=warden.display_name, amenities=['wifi', 'laundry'])
            girls = Hostel(name="Sarojini House", type='girls', capacity=8, floors=2, status='active',
                           amenities=['wifi'])
            db.session.add_all([boys, girls])
            for hostel in (boys, girls):
                for floor in (1, 2):
                    hostel.rooms.append(Room(room_number=f"{floor}01", floor=floor, type='double', capacity=2,
                                             occupancy=0, status='available', monthly_rent=3500, amenities=[]))
                    hostel.rooms.append(Room(room_number=f"{floor}02", floor=floor, type='double', capacity=2,
                                             occupancy=0, status='available', monthly_rent=3500, amenities=[]))
            db.session.flush()
            month = today.strftime('%Y-%m')
            for hostel, gender in ((boys, 'male'), (girls, 'female')):
                residents = [s for s in students if s.gender == gender][:3]
                room = hostel.rooms[0]
                for bed, student in enumerate(residents[:2], start=1):
                    alloc = RoomAllocation(room_id=room.id, hostel_id=hostel.id, student_id=student.id,
                                           bed_number=bed, start_date=today - timedelta(days=60), status='active')
                    room.occupancy += 1
                    hostel.occupancy += 1
                    db.session.add(alloc)
                    db.session.flush()
                    db.session.add(HostelFee(student_id=student.id, allocation_id=alloc.id, fee_type='room_rent',
                                             amount=room.monthly_rent, month=month,
                                             due_date=today.replace(day=10), status='pending'))
                room.refresh_status()
                for day in range(7):
                    db.session.add(MessMenu(hostel_id=hostel.id, day_of_week=day, meal_type='lunch',
                                            items=['Rice', 'Dal', 'Seasonal vegetable']))
            db.session.commit()
            print("Created hostels, rooms, allocations, fees and mess menu.")

        print("Database seeded successfully!")


if __name__ == '__main__':
    seed()
