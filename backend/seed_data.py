"""Seed database with demo data."""
from mes_api.auth import create_session_token
from mes_api.database import Base, SessionLocal, engine
from mes_api.models import (
    DataCollectionActivity, Department, Order, PauseReason, Routing,
    RoutingOperation, RoutingOperationActivity, Team, TeamMembership,
    User, WorkOrderOperation
)
from mes_api.use_cases.pause_reasons import DEFAULT_PAUSE_REASONS
import uuid

TEAM_ID = uuid.UUID('00000000-0000-0000-0000-000000000001')


def seed():
    """Seed database with demo data."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        if db.query(Team).filter(Team.id == TEAM_ID).first():
            print("Demo team already exists, nothing to do.")
            return

        team = Team(id=TEAM_ID, name="Demo Plant", slug="demo-plant")
        db.add(team)
        db.flush()

        # Departments
        departments_data = [
            {'id': uuid.UUID('00000000-0000-0000-0000-000000000201'), 'name': 'Machining'},
            {'id': uuid.UUID('00000000-0000-0000-0000-000000000202'), 'name': 'Assembly'},
            {'id': uuid.UUID('00000000-0000-0000-0000-000000000203'), 'name': 'Quality Control'},
        ]
        departments = []
        for department_data in departments_data:
            department = Department(team_id=team.id, **department_data)
            db.add(department)
            departments.append(department)

        # Users
        users_data = [
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000101'),
                'display_name': 'Plant Admin',
                'primary_email': 'admin@demo-plant.local',
                'role': 'admin',
                'department_access': {'allDepartments': True, 'specificDepartments': []},
            },
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000102'),
                'display_name': 'Alex Operator',
                'primary_email': 'operator@demo-plant.local',
                'role': 'member',
                'department_access': {
                    'allDepartments': False,
                    'specificDepartments': [str(departments_data[0]['id'])],
                },
            },
        ]

        users = []
        for user_data in users_data:
            role = user_data.pop('role')
            user = User(selected_team_id=team.id, **user_data)
            db.add(user)
            db.flush()
            db.add(TeamMembership(team_id=team.id, user_id=user.id, role=role))
            users.append(user)

        # Pause reasons
        for name, category, description in DEFAULT_PAUSE_REASONS:
            db.add(PauseReason(team_id=team.id, name=name, category=category, description=description))

        # Data collection activity
        inspection = DataCollectionActivity(
            team_id=team.id,
            name="Dimensional check",
            description="Measure critical dimensions after machining",
            fields=[
                {'id': 'diameter', 'name': 'diameter', 'label': 'Outer diameter (mm)', 'type': 'number', 'required': True},
                {'id': 'surface_ok', 'name': 'surface_ok', 'label': 'Surface OK', 'type': 'boolean'},
            ],
        )
        db.add(inspection)

        # Routing with three operations (times in seconds)
        routing = Routing(team_id=team.id, name="Housing, standard", description="Machined housing", version="1.0")
        db.add(routing)
        db.flush()

        operations_data = [
            (10, 'Turning', departments[0], 900, 240),
            (20, 'Assembly', departments[1], 600, 180),
            (30, 'Final inspection', departments[2], 0, 120),
        ]
        operations = []
        for number, name, department, setup_time, run_time in operations_data:
            operation = RoutingOperation(
                team_id=team.id,
                routing_id=routing.id,
                operation_number=number,
                operation_name=name,
                department_id=department.id,
                setup_time=setup_time,
                run_time=run_time,
                required_skills=[],
                file_attachments=[],
            )
            db.add(operation)
            operations.append(operation)
        db.flush()

        db.add(RoutingOperationActivity(
            routing_operation_id=operations[0].id,
            data_collection_activity_id=inspection.id,
            is_required=True,
            sequence=1,
        ))

        # One open order
        order = Order(team_id=team.id, order_number="WO-1001", routing_id=routing.id, quantity=25, priority=1)
        db.add(order)
        db.flush()
        for index, operation in enumerate(operations):
            db.add(WorkOrderOperation(
                team_id=team.id,
                order_id=order.id,
                routing_operation_id=operation.id,
                status='pending' if index == 0 else 'waiting',
                file_attachments=[],
            ))

        db.commit()
        print("✅ Database seeded successfully!")
        print("\nSession tokens (send as 'Authorization: Bearer <token>'):")
        for user in users:
            print(f"  {user.display_name}: {create_session_token(user.id)}")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
