"""
Main entry point for the Lyceum platform.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

from .config import DEFAULT_CONFIG, configure_logging, load_config, validate_config
from .core.authorization import Identity
from .core.enums import ContentType, ItemKind, Role
from .core.exceptions import ConfigurationError
from .persistence import DatabaseFactory, RepositoryRegistry
from .services import (
    AccessService, ActivityService, AssessmentService, ConcurrencyManager, CourseService,
    EnrollmentService, EventBus, GradingService, ProgressService, UserService
)
from .services.access_service import identity_of
from .api.rest_api import LyceumRestAPI


logger = logging.getLogger(__name__)


class LyceumPlatform:
    """Main platform class that wires the database, services, and API together."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        merged = dict(DEFAULT_CONFIG)
        merged.update(config or {})
        self._config = validate_config(merged)
        self._rest_thread = None
        self._running = False

        # Initialize platform
        self._initialize_platform()

    def _initialize_platform(self):
        """Initialize the platform with all services."""
        print("Initializing Lyceum platform...")

        # Initialize database
        db_type = self._config.get('database_type', 'sqlite')
        db_config = self._config.get('database_config', {})
        self.database = DatabaseFactory.create_database(db_type, **db_config)
        print(f"✓ Database initialized: {db_type}")

        self.repositories = RepositoryRegistry(self.database)
        print("✓ Repositories initialized")

        self.concurrency_manager = ConcurrencyManager()
        self.event_bus = EventBus(max_history=self._config.get('max_history', 1000))
        print("✓ Concurrency manager and event bus initialized")

        # Initialize services
        repos = self.repositories
        self.access = AccessService(repos)
        self.users = UserService(repos, self.access)
        self.courses = CourseService(repos, self.access, self.concurrency_manager, self.event_bus)
        self.assessments = AssessmentService(repos, self.access, self.concurrency_manager, self.event_bus)
        self.enrollments = EnrollmentService(repos, self.access, self.concurrency_manager, self.event_bus)
        self.grading = GradingService(repos, self.access, self.assessments,
                                      self.concurrency_manager, self.event_bus)
        self.progress = ProgressService(repos, self.access, self.courses,
                                        self.concurrency_manager, self.event_bus)
        self.activity = ActivityService(repos, self.access)

        self.event_bus.subscribe("progress", self.progress)
        self.event_bus.subscribe("activity", self.activity)
        print("✓ Services initialized")

        # Initialize API
        self.rest_api = LyceumRestAPI(self.access, self.users, self.courses, self.assessments,
                                      self.enrollments, self.grading, self.progress, self.activity)
        print("✓ API initialized")

        print("✓ Lyceum platform initialized successfully!")

    @property
    def app(self):
        return self.rest_api.app

    def start_rest_server(self, host: str = "0.0.0.0", port: int = 8000):
        """Start the REST server."""
        import uvicorn

        def run_server():
            uvicorn.run(
                self.rest_api.app,
                host=host,
                port=port,
                log_level=self._config.get('log_level', 'INFO').lower()
            )

        # Start server in a separate thread
        self._rest_thread = threading.Thread(target=run_server, daemon=True)
        self._rest_thread.start()

        print(f"✓ REST server started on {host}:{port}")

    def start_platform(self, host: Optional[str] = None, port: Optional[int] = None):
        """Start the entire platform."""
        if self._running:
            print("Platform already running")
            return

        host = host or self._config['rest_host']
        port = port or self._config['rest_port']
        print("Starting Lyceum platform...")
        self.start_rest_server(host, port)

        self._running = True
        print("✓ Lyceum platform started successfully!")
        print(f"  - REST API: http://localhost:{port}")
        print(f"  - API Docs: http://localhost:{port}/docs")

    def stop_platform(self):
        """Stop the platform."""
        print("Stopping Lyceum platform...")
        self.database.close()
        self._running = False
        print("✓ Lyceum platform stopped")

    def create_sample_data(self) -> Dict[str, Identity]:
        """Seed one admin, one teacher, and one student. Safe to run twice."""
        print("Creating sample data...")
        admin = self.users.ensure_user("admin", [Role.ADMIN], "Administrator")
        teacher = self.users.ensure_user("teacher", [Role.TEACHER], "Tess Teacher")
        student = self.users.ensure_user("student", [Role.STUDENT], "Sam Student")
        print("✓ Sample data created")
        return {
            "admin": identity_of(admin),
            "teacher": identity_of(teacher),
            "student": identity_of(student),
        }

    def run_demo(self):
        """Walk a student through a two-lesson course to full completion."""
        print("Running Lyceum platform demonstration...")
        people = self.create_sample_data()
        teacher, student = people["teacher"], people["student"]

        course = self.courses.create_course(teacher, "Introduction to Python")
        first = self.courses.add_lesson(teacher, course.id, "Getting started")
        contents = [
            self.courses.add_content(teacher, first.id, "Installing Python", ContentType.TEXT),
            self.courses.add_content(teacher, first.id, "Your first program", ContentType.VIDEO),
        ]
        second = self.courses.add_lesson(teacher, course.id, "Practice")
        exercise = self.assessments.create_exercise(teacher, second.id, "Warm-up", max_score=10)
        print(f"\n=== Course '{course.title}' with {len(self.courses.ordered_lessons(course.id))} lessons ===")

        self.enrollments.enroll(student, course.id)
        for content in contents:
            progress = self.progress.record_content_viewed(student, content.id)
        print(f"After viewing lesson 1: {progress.completion_percentage}%")

        submission = self.grading.submit_work(student, ItemKind.EXERCISE, exercise.id, {"answer": "print('hi')"})
        self.grading.grade_submission(teacher, submission.id, 8, submission.version, "Nice work")
        progress = self.progress.get_progress(student, course.id)
        print(f"After exercise graded: {progress.completion_percentage}%")

        print(f"Activity entries for student: {len(self.activity.list_activity(student))}")
        print("\n✓ Demo completed")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Lyceum Learning Platform")
    parser.add_argument("--config", type=str, help="Configuration file path")
    parser.add_argument("--rest-host", type=str, help="REST server host")
    parser.add_argument("--rest-port", type=int, help="REST server port")
    parser.add_argument("--demo", action="store_true", help="Run demo mode")

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        parser.error(e.message)
    if args.demo:
        config['database_config'] = {'database_path': ':memory:'}
    configure_logging(config['log_level'])

    platform = LyceumPlatform(config)

    try:
        if args.demo:
            platform.run_demo()
        else:
            platform.start_platform(args.rest_host, args.rest_port)

            # Keep running
            print("\nPlatform is running. Press Ctrl+C to stop.")
            while True:
                time.sleep(1)

    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        platform.stop_platform()


if __name__ == "__main__":
    main()
