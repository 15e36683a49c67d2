import logging

from rest_framework import exceptions, mixins, permissions, status, views, viewsets
from rest_framework.decorators import action
from django.utils.translation import gettext as _

from cores.pagination import ListPagination, paginated_payload
from cores.responses import respond_with_outcome, respond_with_template, respond_with_failure
from users.permissions import IsTeacher, IsPlatformAdmin
from . import services
from .models import Question
from .serializers import (
    ExamCreateSerializer, ExamQuestionsSerializer, ExamListSerializer,
    QuizSerializer, QuestionSerializer,
)

logger = logging.getLogger(__name__)


class LessonExamCreateView(views.APIView):
    """
    Teacher schedules a new exam for one of their lessons.
    Payload: { "duration": 60, "title": "...", "startedAt": 1700000000, "description": "..." }
    """
    permission_classes = [IsTeacher]

    def post(self, request, lesson_id):
        serializer = ExamCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            outcome = services.create_exam(
                request.user,
                lesson_id,
                duration=data['duration'],
                title=data['title'],
                started_at=data['startedAt'],
                description=data.get('description'),
            )
            return respond_with_outcome(outcome, status.HTTP_201_CREATED)
        except Exception as e:
            logger.exception(f"Exam creation failed for lesson {lesson_id}")
            return respond_with_failure(e)


class ExamQuestionSelectView(views.APIView):
    """
    Attaches accepted questions from the bank to an exam.
    Payload: { "questions": [1, 2, 3] }
    """
    permission_classes = [IsTeacher]

    def post(self, request, lesson_id, exam_id):
        serializer = ExamQuestionsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            outcome = services.select_exam_questions(
                request.user, lesson_id, exam_id, serializer.validated_data['questions']
            )
            return respond_with_outcome(outcome)
        except Exception as e:
            logger.exception(f"Selecting questions failed for exam {exam_id}")
            return respond_with_failure(e)


class ExamViewSet(viewsets.GenericViewSet):
    lookup_value_regex = r"\d+"
    pagination_class = ListPagination
    serializer_class = ExamListSerializer

    def get_permissions(self):
        if self.action == 'retrieve':
            return [IsTeacher()]
        return [permissions.IsAuthenticated()]

    def list(self, request):
        """?title=algebra&order=asc&perPage=50&page=2"""
        try:
            outcome = services.exam_queryset(
                title=request.query_params.get('title'),
                order=request.query_params.get('order'),
            )
            if not outcome.ok:
                return respond_with_outcome(outcome)
            page = self.paginate_queryset(outcome.data)
            data = ExamListSerializer(page, many=True).data
            return respond_with_template(True, paginated_payload(self.paginator, data))
        except exceptions.APIException:
            raise
        except Exception as e:
            logger.exception("Listing exams failed")
            return respond_with_failure(e)

    def retrieve(self, request, pk=None):
        try:
            outcome = services.get_exam_for_teacher(request.user, pk)
            if not outcome.ok:
                return respond_with_outcome(outcome)
            data = QuizSerializer(outcome.data, context={'reveal_answers': True}).data
            return respond_with_template(True, data)
        except Exception as e:
            logger.exception(f"Loading exam {pk} failed")
            return respond_with_failure(e)


class QuestionViewSet(mixins.ListModelMixin,
                      mixins.CreateModelMixin,
                      viewsets.GenericViewSet):
    queryset = Question.objects.prefetch_related('answers').order_by('-id')
    serializer_class = QuestionSerializer
    pagination_class = ListPagination

    def get_permissions(self):
        if self.action == 'accept':
            return [IsPlatformAdmin()]
        return [IsTeacher()]

    def get_queryset(self):
        queryset = super().get_queryset()
        # ?accepted=1 limits the bank to questions usable in exams
        accepted = self.request.query_params.get('accepted')
        if accepted in ('1', 'true'):
            queryset = queryset.filter(is_accepted=True)
        elif accepted in ('0', 'false'):
            queryset = queryset.filter(is_accepted=False)
        return queryset

    def list(self, request, *args, **kwargs):
        page = self.paginate_queryset(self.get_queryset())
        if page is not None:
            data = self.get_serializer(page, many=True).data
            return respond_with_template(True, paginated_payload(self.paginator, data))
        return respond_with_template(True, self.get_serializer(self.get_queryset(), many=True).data)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        question = serializer.save(author=request.user)
        logger.info(f"Question {question.pk} submitted by {request.user.pk}")
        return respond_with_template(
            True, self.get_serializer(question).data, _("Question submitted for review."), status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'], url_path='accept')
    def accept(self, request, pk=None):
        question = self.get_object()
        question.is_accepted = True
        question.save(update_fields=['is_accepted'])
        logger.info(f"Question {question.pk} accepted by {request.user.pk}")
        return respond_with_template(True, self.get_serializer(question).data, _("Question accepted."))
