from schooladmin import app, db, bootstrap_admin
from schooladmin import models  # noqa: F401

with app.app_context():
    db.create_all()
    admin = bootstrap_admin()
    print(f"Schema ready at {app.config['SQLALCHEMY_DATABASE_URI']}")
    if admin:
        print(f"Admin user: {admin.username}")
