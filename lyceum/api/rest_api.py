"""
REST API implementation for the Lyceum platform using FastAPI.

The caller is identified by the ``X-User`` header (a user id or username);
a missing or unknown value is treated as anonymous. Domain errors map to
HTTP statuses in one exception handler.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..core.authorization import Identity
from ..core.entities import AbstractEntity
from ..core.enums import Action, ContentType, ItemKind, Role
from ..core.exceptions import LyceumException
from ..services import (
    AccessService, ActivityService, AssessmentService, CourseService, EnrollmentService,
    GradingService, ProgressService, UserService
)


logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "authorization_denied": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "conflict_stale_write": status.HTTP_409_CONFLICT,
    "invariant_violation": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# Pydantic models for API
class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    roles: List[Role] = Field(..., min_length=1)
    display_name: str = ""


class UserResponse(BaseModel):
    id: str
    username: str
    roles: List[str]
    display_name: str
    created_at: datetime
    version: int


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    teacher_id: Optional[str] = None
    sequential: bool = False


class CourseResponse(BaseModel):
    id: str
    title: str
    description: str
    teacher_id: str
    active: bool
    sequential: bool = False
    created_at: datetime
    updated_at: datetime
    version: int


class ActiveUpdate(BaseModel):
    active: bool


class LessonCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""


class LessonResponse(BaseModel):
    id: str
    course_id: str
    title: str
    description: str
    order_index: int
    version: int


class MoveRequest(BaseModel):
    position: int = Field(..., ge=0)


class ContentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content_type: ContentType = ContentType.TEXT
    body: str = ""


class ContentResponse(BaseModel):
    id: str
    lesson_id: str
    title: str
    content_type: str
    body: str
    order_index: int
    version: int


class ItemCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    max_score: int = Field(..., gt=0)
    passing_score: Optional[int] = Field(None, ge=0)


class ExamCreate(ItemCreate):
    max_score: int = Field(100, gt=0)
    auto_grade: bool = False
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None


class AssignmentCreate(ItemCreate):
    due_date: Optional[datetime] = None


class ItemResponse(BaseModel):
    id: str
    kind: str
    lesson_id: str
    title: str
    max_score: int
    passing_score: Optional[int] = None
    due_date: Optional[datetime] = None
    exam_status: Optional[str] = None
    auto_grade: Optional[bool] = None
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None
    version: int


class QuestionCreate(BaseModel):
    text: str = Field(..., min_length=1)
    points: int = Field(..., gt=0)
    correct_answer: Optional[str] = None


class CloneRequest(BaseModel):
    bank_question_id: str = Field(..., min_length=1)


class QuestionResponse(BaseModel):
    id: str
    text: str
    points: int
    exam_id: Optional[str] = None
    order_index: Optional[int] = None
    in_bank: bool
    correct_answer: Optional[str] = None


class EnrollRequest(BaseModel):
    student_id: Optional[str] = None


class EnrollmentResponse(BaseModel):
    id: str
    student_id: str
    course_id: str
    created_at: datetime


class SubmitRequest(BaseModel):
    kind: ItemKind
    item_id: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)


class GradeRequest(BaseModel):
    score: float
    expected_version: int = Field(..., ge=1)
    feedback: Optional[str] = None


class SubmissionResponse(BaseModel):
    id: str
    kind: str
    item_id: str
    student_id: str
    course_id: str
    lesson_id: str
    payload: Dict[str, Any]
    late: bool
    state: str
    score: Optional[float] = None
    passed: Optional[bool] = None
    feedback: Optional[str] = None
    graded_by: Optional[str] = None
    submitted_at: datetime
    graded_at: Optional[datetime] = None
    version: int


class ProgressResponse(BaseModel):
    student_id: str
    course_id: str
    viewed_content_ids: List[str]
    completed_lesson_ids: List[str]
    total_lessons: int
    completed_lesson_count: int
    completion_percentage: int
    last_accessed: Optional[datetime] = None


class ActivityResponse(BaseModel):
    id: str
    user_id: str
    activity_type: str
    entity_id: Optional[str] = None
    metadata: Dict[str, Any]
    timestamp: datetime


class AuthorizeRequest(BaseModel):
    action: Action
    course_id: Optional[str] = None
    owner_id: Optional[str] = None
    lesson_id: Optional[str] = None


class DecisionResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None


def _respond(model, entity: AbstractEntity, **extra):
    """Build a response model from an entity's document form."""
    data = entity.to_dict()
    data.update(extra)
    return model(**data)


class LyceumRestAPI:
    """REST API implementation for the Lyceum platform."""

    def __init__(self, access: AccessService, users: UserService, courses: CourseService,
                 assessments: AssessmentService, enrollments: EnrollmentService,
                 grading: GradingService, progress: ProgressService, activity: ActivityService):
        self._access = access
        self._users = users
        self._courses = courses
        self._assessments = assessments
        self._enrollments = enrollments
        self._grading = grading
        self._progress = progress
        self._activity = activity

        # Create FastAPI app
        self.app = FastAPI(
            title="Lyceum Learning Platform API",
            description="Courses, lessons, submissions, grading, and progress",
            version=__version__,
            docs_url="/docs",
            redoc_url="/redoc"
        )

        # Add CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_error_handling()
        self._setup_routes()

    def _setup_error_handling(self):

        @self.app.exception_handler(LyceumException)
        async def lyceum_exception_handler(request: Request, exc: LyceumException):
            code = ERROR_STATUS.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
            if code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            return JSONResponse(
                status_code=code,
                content={"error": exc.error_code or "internal_error", "message": exc.message,
                         "details": exc.details},
            )

    def _setup_routes(self):
        """Setup API routes."""

        def current_identity(x_user: Optional[str] = Header(None)) -> Optional[Identity]:
            return self._access.identify(x_user)

        app = self.app

        @app.get("/", response_model=Dict[str, str])
        async def root():
            """Root endpoint."""
            return {
                "message": "Lyceum Learning Platform API",
                "version": __version__,
                "docs": "/docs"
            }

        @app.get("/health", response_model=Dict[str, str])
        async def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        # Users
        @app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
        def create_user(body: UserCreate, actor: Optional[Identity] = Depends(current_identity)):
            user = self._users.create_user(actor, body.username, body.roles, body.display_name)
            return _respond(UserResponse, user)

        @app.get("/users/{user_id}", response_model=UserResponse)
        def get_user(user_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return _respond(UserResponse, self._users.get_user(actor, user_id))

        # Courses
        @app.get("/catalog", response_model=List[CourseResponse])
        def list_catalog(actor: Optional[Identity] = Depends(current_identity)):
            """Public catalog of active courses."""
            return [self._course_to_response(c) for c in self._courses.list_catalog(actor)]

        @app.post("/courses", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
        def create_course(body: CourseCreate, actor: Optional[Identity] = Depends(current_identity)):
            course = self._courses.create_course(actor, body.title, body.teacher_id, body.description,
                                                 body.sequential)
            return self._course_to_response(course)

        @app.get("/courses/{course_id}", response_model=CourseResponse)
        def get_course(course_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return self._course_to_response(self._courses.get_course(actor, course_id))

        @app.put("/courses/{course_id}/active", response_model=CourseResponse)
        def set_course_active(course_id: str, body: ActiveUpdate,
                              actor: Optional[Identity] = Depends(current_identity)):
            return self._course_to_response(self._courses.set_course_active(actor, course_id, body.active))

        # Lessons
        @app.get("/courses/{course_id}/lessons", response_model=List[LessonResponse])
        def list_lessons(course_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return [_respond(LessonResponse, l) for l in self._courses.list_lessons(actor, course_id)]

        @app.post("/courses/{course_id}/lessons", response_model=LessonResponse,
                  status_code=status.HTTP_201_CREATED)
        def add_lesson(course_id: str, body: LessonCreate, actor: Optional[Identity] = Depends(current_identity)):
            return _respond(LessonResponse, self._courses.add_lesson(actor, course_id, body.title, body.description))

        @app.post("/lessons/{lesson_id}/move", response_model=List[LessonResponse])
        def move_lesson(lesson_id: str, body: MoveRequest, actor: Optional[Identity] = Depends(current_identity)):
            return [_respond(LessonResponse, l) for l in self._courses.move_lesson(actor, lesson_id, body.position)]

        @app.delete("/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
        def remove_lesson(lesson_id: str, actor: Optional[Identity] = Depends(current_identity)):
            self._courses.remove_lesson(actor, lesson_id)

        # Content
        @app.get("/lessons/{lesson_id}/contents", response_model=List[ContentResponse])
        def list_contents(lesson_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return [_respond(ContentResponse, c) for c in self._courses.list_contents(actor, lesson_id)]

        @app.post("/lessons/{lesson_id}/contents", response_model=ContentResponse,
                  status_code=status.HTTP_201_CREATED)
        def add_content(lesson_id: str, body: ContentCreate, actor: Optional[Identity] = Depends(current_identity)):
            content = self._courses.add_content(actor, lesson_id, body.title, body.content_type, body.body)
            return _respond(ContentResponse, content)

        @app.post("/contents/{content_id}/move", response_model=List[ContentResponse])
        def move_content(content_id: str, body: MoveRequest, actor: Optional[Identity] = Depends(current_identity)):
            return [_respond(ContentResponse, c)
                    for c in self._courses.move_content(actor, content_id, body.position)]

        @app.delete("/contents/{content_id}", status_code=status.HTTP_204_NO_CONTENT)
        def remove_content(content_id: str, actor: Optional[Identity] = Depends(current_identity)):
            self._courses.remove_content(actor, content_id)

        @app.post("/contents/{content_id}/view", response_model=ProgressResponse)
        def record_content_viewed(content_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return _respond(ProgressResponse, self._progress.record_content_viewed(actor, content_id))

        # Gradable items
        @app.post("/lessons/{lesson_id}/exercise", response_model=ItemResponse,
                  status_code=status.HTTP_201_CREATED)
        def create_exercise(lesson_id: str, body: ItemCreate, actor: Optional[Identity] = Depends(current_identity)):
            item = self._assessments.create_exercise(actor, lesson_id, body.title, body.max_score, body.passing_score)
            return self._item_to_response(item)

        @app.post("/lessons/{lesson_id}/exam", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
        def create_exam(lesson_id: str, body: ExamCreate, actor: Optional[Identity] = Depends(current_identity)):
            item = self._assessments.create_exam(actor, lesson_id, body.title, body.max_score,
                                                 body.passing_score, body.auto_grade,
                                                 body.available_from, body.available_to)
            return self._item_to_response(item)

        @app.post("/lessons/{lesson_id}/assignments", response_model=ItemResponse,
                  status_code=status.HTTP_201_CREATED)
        def create_assignment(lesson_id: str, body: AssignmentCreate,
                              actor: Optional[Identity] = Depends(current_identity)):
            item = self._assessments.create_assignment(actor, lesson_id, body.title, body.max_score,
                                                       body.passing_score, body.due_date)
            return self._item_to_response(item)

        # Exam questions and the question bank
        @app.get("/exams/{exam_id}/questions", response_model=List[QuestionResponse])
        def list_questions(exam_id: str, actor: Optional[Identity] = Depends(current_identity)):
            questions = self._assessments.list_questions(actor, exam_id)
            reveal = self._assessments.can_author_exam(actor, exam_id)
            return [self._question_to_response(q, reveal) for q in questions]

        @app.post("/exams/{exam_id}/questions", response_model=QuestionResponse,
                  status_code=status.HTTP_201_CREATED)
        def add_question(exam_id: str, body: QuestionCreate, actor: Optional[Identity] = Depends(current_identity)):
            question = self._assessments.add_question(actor, exam_id, body.text, body.points, body.correct_answer)
            return self._question_to_response(question, True)

        @app.post("/exams/{exam_id}/questions/from-bank", response_model=QuestionResponse,
                  status_code=status.HTTP_201_CREATED)
        def clone_question(exam_id: str, body: CloneRequest, actor: Optional[Identity] = Depends(current_identity)):
            question = self._assessments.clone_question_from_bank(actor, body.bank_question_id, exam_id)
            return self._question_to_response(question, True)

        @app.post("/questions/{question_id}/move", response_model=List[QuestionResponse])
        def move_question(question_id: str, body: MoveRequest, actor: Optional[Identity] = Depends(current_identity)):
            questions = self._assessments.move_question(actor, question_id, body.position)
            return [self._question_to_response(q, True) for q in questions]

        @app.delete("/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
        def remove_question(question_id: str, actor: Optional[Identity] = Depends(current_identity)):
            self._assessments.remove_question(actor, question_id)

        @app.post("/exams/{exam_id}/finalize", response_model=ItemResponse)
        def finalize_exam(exam_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return self._item_to_response(self._assessments.finalize_exam(actor, exam_id))

        @app.get("/bank/questions", response_model=List[QuestionResponse])
        def list_bank_questions(actor: Optional[Identity] = Depends(current_identity)):
            return [self._question_to_response(q, True) for q in self._assessments.list_bank_questions(actor)]

        @app.post("/bank/questions", response_model=QuestionResponse, status_code=status.HTTP_201_CREATED)
        def create_bank_question(body: QuestionCreate, actor: Optional[Identity] = Depends(current_identity)):
            question = self._assessments.create_bank_question(actor, body.text, body.points, body.correct_answer)
            return self._question_to_response(question, True)

        # Enrollment
        @app.post("/courses/{course_id}/enrollments", response_model=EnrollmentResponse,
                  status_code=status.HTTP_201_CREATED)
        def enroll(course_id: str, body: EnrollRequest, actor: Optional[Identity] = Depends(current_identity)):
            return _respond(EnrollmentResponse, self._enrollments.enroll(actor, course_id, body.student_id))

        @app.delete("/courses/{course_id}/enrollments/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
        def drop(course_id: str, student_id: str, actor: Optional[Identity] = Depends(current_identity)):
            self._enrollments.drop(actor, course_id, student_id)

        @app.get("/courses/{course_id}/students", response_model=List[UserResponse])
        def list_course_students(course_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return [_respond(UserResponse, u) for u in self._enrollments.list_course_students(actor, course_id)]

        @app.get("/me/courses", response_model=List[CourseResponse])
        def list_my_courses(actor: Optional[Identity] = Depends(current_identity)):
            return [self._course_to_response(c) for c in self._enrollments.list_student_courses(actor)]

        # Submissions and grading
        @app.post("/submissions", response_model=SubmissionResponse)
        def submit_work(body: SubmitRequest, actor: Optional[Identity] = Depends(current_identity)):
            submission = self._grading.submit_work(actor, body.kind, body.item_id, body.payload)
            return _respond(SubmissionResponse, submission)

        @app.get("/submissions/{submission_id}", response_model=SubmissionResponse)
        def get_submission(submission_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return _respond(SubmissionResponse, self._grading.get_submission(actor, submission_id))

        @app.post("/submissions/{submission_id}/grade", response_model=SubmissionResponse)
        def grade_submission(submission_id: str, body: GradeRequest,
                             actor: Optional[Identity] = Depends(current_identity)):
            submission = self._grading.grade_submission(actor, submission_id, body.score,
                                                        body.expected_version, body.feedback)
            return _respond(SubmissionResponse, submission)

        @app.get("/items/{kind}/{item_id}/submissions", response_model=List[SubmissionResponse])
        def list_item_submissions(kind: ItemKind, item_id: str,
                                  actor: Optional[Identity] = Depends(current_identity)):
            return [_respond(SubmissionResponse, s)
                    for s in self._grading.list_item_submissions(actor, kind, item_id)]

        @app.get("/items/{kind}/{item_id}/submission/me", response_model=Optional[SubmissionResponse])
        def find_my_submission(kind: ItemKind, item_id: str,
                               actor: Optional[Identity] = Depends(current_identity)):
            """The caller's own submission for an item, or null before the first one."""
            submission = self._grading.find_my_submission(actor, kind, item_id)
            return _respond(SubmissionResponse, submission) if submission is not None else None

        # Progress and activity
        @app.get("/courses/{course_id}/progress", response_model=ProgressResponse)
        def get_progress(course_id: str, student_id: Optional[str] = None,
                         actor: Optional[Identity] = Depends(current_identity)):
            return _respond(ProgressResponse, self._progress.get_progress(actor, course_id, student_id))

        @app.get("/courses/{course_id}/progress/report", response_model=List[ProgressResponse])
        def get_course_progress(course_id: str, actor: Optional[Identity] = Depends(current_identity)):
            return [_respond(ProgressResponse, p) for p in self._progress.get_course_progress(actor, course_id)]

        @app.get("/me/activity", response_model=List[ActivityResponse])
        def list_activity(actor: Optional[Identity] = Depends(current_identity)):
            return [_respond(ActivityResponse, a) for a in self._activity.list_activity(actor)]

        @app.post("/authorize", response_model=DecisionResponse)
        def authorize(body: AuthorizeRequest, actor: Optional[Identity] = Depends(current_identity)):
            """Ask the gate whether the caller may perform an action."""
            decision = self._access.authorize(actor, body.action, body.course_id, body.owner_id,
                                              body.lesson_id)
            return DecisionResponse(allowed=decision.allowed,
                                    reason=decision.reason.value if decision.reason else None)

    def _course_to_response(self, course) -> CourseResponse:
        """Convert Course entity to response model."""
        return _respond(CourseResponse, course, active=course.active)

    def _item_to_response(self, item) -> ItemResponse:
        """Convert a gradable item to response model."""
        return _respond(ItemResponse, item, kind=item.kind.value)

    def _question_to_response(self, question, reveal_answer: bool) -> QuestionResponse:
        extra = {} if reveal_answer else {"correct_answer": None}
        return _respond(QuestionResponse, question, **extra)
