import os, sys, pytest
# Ensure backend directory is on path so 'school_audit' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from sqlalchemy import delete
from school_audit import create_app, get_db
from school_audit.models.directory import Base, StaffUser
from school_audit.models.audit import AuditEntry

TEST_JWT_SECRET = 'test-secret-key-that-is-long-enough-for-hs256'


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app({
        'TESTING': True,
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': TEST_JWT_SECRET,
    })
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture(autouse=True)
def clean_store(app_instance):
    session = get_db()
    session.rollback()
    session.execute(delete(AuditEntry))
    session.execute(delete(StaffUser))
    session.commit()
    session.expunge_all()
    yield


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_context):
    return app_context.test_client()
