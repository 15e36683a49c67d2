import logging

from rest_framework import exceptions, generics, permissions, views

from cores.pagination import ResultListPagination, paginated_payload
from cores.responses import respond_with_outcome, respond_with_template, respond_with_failure
from exams.serializers import QuizSerializer
from . import services
from .serializers import ExamFinishSerializer, ResultSerializer

logger = logging.getLogger(__name__)


# --- STUDENT VIEWS ---

class StartExamView(views.APIView):
    """
    Student starts an exam.
    Creates the session and returns the exam WITH its questions, without the answer keys.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, exam_id):
        try:
            outcome = services.start_exam(request.user, exam_id)
            if not outcome.ok:
                return respond_with_outcome(outcome)
            return respond_with_template(True, QuizSerializer(outcome.data).data)
        except Exception as e:
            logger.exception(f"Starting exam {exam_id} failed")
            return respond_with_failure(e)


class FinishExamView(views.APIView):
    """
    Student submits answers. Grading happens later, off the request.
    Payload: { "answers": [ { "question": 1, "answer": 4 }, { "question": 2, "answer": null } ] }
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, exam_id):
        serializer = ExamFinishSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        answers = [dict(item) for item in serializer.validated_data['answers']]
        try:
            return respond_with_outcome(services.finish_exam(request.user, exam_id, answers))
        except Exception as e:
            logger.exception(f"Finishing exam {exam_id} failed")
            return respond_with_failure(e)


class ExamResultView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, exam_id):
        try:
            outcome = services.get_result(request.user, exam_id)
            if not outcome.ok:
                return respond_with_outcome(outcome)
            return respond_with_template(True, ResultSerializer(outcome.data).data)
        except Exception as e:
            logger.exception(f"Loading result of exam {exam_id} failed")
            return respond_with_failure(e)


class StudentResultListView(generics.ListAPIView):
    """All results of the logged-in student, newest first."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ResultSerializer
    pagination_class = ResultListPagination

    def get_queryset(self):
        return services.result_queryset(self.request.user)

    def list(self, request, *args, **kwargs):
        try:
            page = self.paginate_queryset(self.get_queryset())
            data = self.get_serializer(page, many=True).data
            return respond_with_template(True, paginated_payload(self.paginator, data))
        except exceptions.APIException:
            raise
        except Exception as e:
            logger.exception("Listing results failed")
            return respond_with_failure(e)
