from sqlalchemy.orm import Session, joinedload
from sqlalchemy import or_, func, desc
from typing import Optional, Dict, Any

from app.errors import ForbiddenError, NotFoundError
from app.models import (
    User, UserRole, Lawyer, Case, CaseStatus, Message, Document, CasePayment, AuditLog
)

# Cases in these states accept no new chat threads, payment requests or meetings
TERMINAL_CASE_STATUSES = [CaseStatus.CLOSED, CaseStatus.RESOLVED, CaseStatus.REJECTED]
MEETING_CASE_STATUSES = [CaseStatus.OPEN, CaseStatus.IN_PROGRESS, CaseStatus.UNDER_REVIEW, CaseStatus.PENDING_DOCS]


class CaseService:
    def __init__(self, db: Session):
        self.db = db

    def get_case(self, case_id: str) -> Case:
        case = self.db.query(Case).options(
            joinedload(Case.client),
            joinedload(Case.lawyer).joinedload(Lawyer.user)
        ).filter(Case.id == case_id).first()
        if not case:
            raise NotFoundError("Case", case_id)
        return case

    @staticmethod
    def is_participant(case: Case, user_id: str) -> bool:
        return case.client_id == user_id or (case.lawyer is not None and case.lawyer.user_id == user_id)

    @staticmethod
    def is_assigned_lawyer(case: Case, user: User) -> bool:
        return user.role == UserRole.LAWYER and case.lawyer is not None and case.lawyer.user_id == user.id

    def user_can_chat(self, case_id: str, user_id: str) -> bool:
        """Chat is for the two parties only; admins are not let in."""
        case = self.db.query(Case).options(joinedload(Case.lawyer)).filter(Case.id == case_id).first()
        return case is not None and self.is_participant(case, user_id)

    def get_case_for_user(self, case_id: str, user: User) -> Case:
        """Client, assigned lawyer, or admin."""
        case = self.get_case(case_id)
        if user.role != UserRole.ADMIN and not self.is_participant(case, user.id):
            raise ForbiddenError("You do not have access to this case")
        return case

    def get_case_for_chat(self, case_id: str, user: User) -> Case:
        case = self.get_case(case_id)
        if not self.is_participant(case, user.id):
            raise ForbiddenError("You do not have access to this case chat")
        return case

    def get_case_for_management(self, case_id: str, user: User) -> Case:
        """Assigned lawyer or admin."""
        case = self.get_case(case_id)
        if user.role != UserRole.ADMIN and not self.is_assigned_lawyer(case, user):
            raise ForbiddenError("Only the assigned lawyer can manage this case")
        return case

    def cases_query_for_user(self, user: User):
        """Cases visible to a user, with role-based filtering."""
        query = self.db.query(Case)

        if user.role == UserRole.USER:
            query = query.filter(Case.client_id == user.id)
        elif user.role == UserRole.LAWYER:
            query = query.join(Lawyer, Case.lawyer_id == Lawyer.id).filter(Lawyer.user_id == user.id)

        return query

    def list_cases(
        self,
        user: User,
        status: Optional[CaseStatus] = None,
        priority=None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ):
        query = self.cases_query_for_user(user)

        if status:
            query = query.filter(Case.status == status)
        if priority:
            query = query.filter(Case.priority == priority)
        if search:
            search_filter = or_(
                Case.title.ilike(f"%{search}%"),
                Case.description.ilike(f"%{search}%"),
                Case.case_number.ilike(f"%{search}%"),
            )
            query = query.filter(search_filter)

        total = query.count()
        cases = query.options(
            joinedload(Case.client),
            joinedload(Case.lawyer).joinedload(Lawyer.user)
        ).order_by(desc(Case.created_at)).offset(skip).limit(limit).all()
        return cases, total

    def get_case_counts(self, case_id: str) -> Dict[str, Any]:
        """Related-record counts shown on the case detail view."""
        return {
            "messages": self.db.query(func.count(Message.id)).filter(Message.case_id == case_id).scalar(),
            "documents": self.db.query(func.count(Document.id)).filter(
                Document.case_id == case_id, Document.deleted_at.is_(None)
            ).scalar(),
            "payments": self.db.query(func.count(CasePayment.id)).filter(CasePayment.case_id == case_id).scalar(),
            "audit_logs": self.db.query(func.count(AuditLog.id)).filter(AuditLog.case_id == case_id).scalar(),
        }
