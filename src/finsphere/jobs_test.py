from datetime import datetime
from decimal import Decimal

import pytest

from finsphere import directory, jobs, models, savings


class TestJobs:
    """Operator command line"""

    def test_auto_deposits_command(self, database, session, make_user, capsys):
        user = make_user("Saver")
        goal = savings.create_goal(session, user, "Auto", 500, auto_deposit={
            "enabled": True, "amount": 25, "frequency": "biweekly", "next_deposit": datetime(2026, 1, 1),
        })

        code = jobs.main(["auto-deposits", "--at", "2026-01-02T00:00:00"], database=database)

        assert code == 0
        assert "1 scheduled deposits applied" in capsys.readouterr().out
        session.expire_all()
        assert session.get(models.SavingsGoal, goal.goal_id).current_amount == Decimal('25.00')

    def test_review_kyc_command(self, database, session, make_user, capsys):
        user = make_user("Applicant")
        directory.submit_kyc_document(session, user, "identity", {
            "filename": "id.png", "url": "https://storage.example.com/id.png",
        })

        code = jobs.main(["review-kyc", str(user.user_id), "identity", "--reject", "--reason", "Blurry"],
                         database=database)

        assert code == 0
        assert "requires_resubmission" in capsys.readouterr().out

    def test_review_missing_document_fails(self, database, make_user, capsys):
        user = make_user("Nobody")
        code = jobs.main(["review-kyc", str(user.user_id), "income", "--approve"], database=database)
        assert code == 1
        assert "KYC document not found" in capsys.readouterr().err

    def test_reject_requires_reason(self, database):
        with pytest.raises(SystemExit):
            jobs.main(["review-kyc", "1", "identity", "--reject"], database=database)


class TestKycReview:
    """Overall KYC status derived from the three document slots"""

    def test_all_slots_approved(self, session, make_user):
        user = make_user("Applicant")
        for slot in directory.KYC_SLOTS:
            directory.submit_kyc_document(session, user, slot, {
                "filename": f"{slot}.pdf", "url": f"https://storage.example.com/{slot}.pdf",
            })
        assert directory.kyc_status(user)["status"] == "pending"

        for slot in directory.KYC_SLOTS[:-1]:
            record = directory.review_kyc_document(session, user.user_id, slot, approved=True)
            assert record.status == "pending"
        record = directory.review_kyc_document(session, user.user_id, directory.KYC_SLOTS[-1], approved=True)
        assert record.status == "approved"

    def test_resubmission_clears_rejection(self, session, make_user):
        user = make_user("Applicant")
        document = {"filename": "id.png", "url": "https://storage.example.com/id.png"}
        directory.submit_kyc_document(session, user, "identity", document)
        directory.review_kyc_document(session, user.user_id, "identity", approved=False, reason="Expired")

        record = directory.submit_kyc_document(session, user, "identity", document)

        assert record.status == "pending"
        assert len(record.documents) == 1
        assert record.documents[0].rejection_reason is None
