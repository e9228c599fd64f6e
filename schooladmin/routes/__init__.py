from schooladmin.routes import core, alumni, communication, exams, hostel  # noqa: F401
