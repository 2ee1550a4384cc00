"""
Unit tests for data models and the state store
"""

import unittest
from data.models import AnalysisStatus, Credential, ProductAnalysisState, ReviewRecord, Route, RouteType
from data.state_store import ProductStateStore, StatusRegressionError


class TestAnalysisStatus(unittest.TestCase):
    """Test status ordering rules"""

    def test_forward_transitions_allowed(self):
        """Test moving forward along the lifecycle"""
        self.assertTrue(AnalysisStatus.PENDING.can_transition_to(AnalysisStatus.FETCHED))
        self.assertTrue(AnalysisStatus.FETCHED.can_transition_to(AnalysisStatus.PROCESSING))
        self.assertTrue(AnalysisStatus.ANALYZED.can_transition_to(AnalysisStatus.COMPLETED))

    def test_backward_transitions_rejected(self):
        """Test that status cannot regress"""
        self.assertFalse(AnalysisStatus.ANALYZED.can_transition_to(AnalysisStatus.FETCHED))
        self.assertFalse(AnalysisStatus.PROCESSING.can_transition_to(AnalysisStatus.PENDING))

    def test_failed_is_reachable_and_retryable(self):
        self.assertTrue(AnalysisStatus.PROCESSING.can_transition_to(AnalysisStatus.FAILED))
        self.assertTrue(AnalysisStatus.FAILED.can_transition_to(AnalysisStatus.FETCHED))

    def test_completed_is_terminal(self):
        self.assertFalse(AnalysisStatus.COMPLETED.can_transition_to(AnalysisStatus.FAILED))
        self.assertFalse(AnalysisStatus.COMPLETED.can_transition_to(AnalysisStatus.PENDING_ANALYSIS))


class TestReviewRecord(unittest.TestCase):
    """Test ReviewRecord model"""

    def test_scorable_requires_text_and_rating(self):
        self.assertTrue(ReviewRecord(id="R1", rating=4, text="Works well").is_scorable())
        self.assertFalse(ReviewRecord(id="R2", rating=None, text="No stars").is_scorable())
        self.assertFalse(ReviewRecord(id="R3", rating=5, text="   ").is_scorable())
        self.assertFalse(ReviewRecord(id="R4", rating=7, text="Out of range").is_scorable())

    def test_state_is_analyzable_only_with_reviews(self):
        state = ProductAnalysisState(product_id="B000TEST01")
        self.assertFalse(state.is_analyzable())
        state.reviews.append(ReviewRecord(id="R1", rating=None, text="x"))
        self.assertTrue(state.is_analyzable())

    def test_media_lists_default_empty_and_unshared(self):
        first = ReviewRecord(id="R1", rating=5, text="a")
        second = ReviewRecord(id="R2", rating=4, text="b")
        first.images.append("https://img/1.jpg")
        self.assertEqual(second.images, [])
        self.assertEqual(ReviewRecord.from_dict({'id': 'R3', 'review_text': 'c', 'images': None}).images, [])

    def test_dict_round_trip_keeps_metadata(self):
        record = ReviewRecord(id="R1", rating=5, text="Great", title="Nice", verified_purchase=True,
                              helpful_count=3, is_vine=True, images=["https://img/1.jpg"])
        data = record.to_dict()

        self.assertEqual(data['review_text'], "Great")
        self.assertEqual(data['meta_data']['helpful_votes'], 3)
        self.assertEqual(ReviewRecord.from_dict(data), record)


class TestCredentialAndRoute(unittest.TestCase):

    def test_cookie_parsing(self):
        cred = Credential(index=0, payload="session-id=123; ubid-main=456; junk")
        self.assertEqual(cred.name, "cookie_1")
        self.assertEqual(cred.to_cookie_dict(), {'session-id': '123', 'ubid-main': '456'})

    def test_cooldown_health(self):
        cred = Credential(index=2, payload="a=b", cooldown_until=1000.0)
        self.assertFalse(cred.is_healthy(now=999.0))
        self.assertTrue(cred.is_healthy(now=1000.0))
        self.assertTrue(Credential(index=0, payload="").is_healthy())

    def test_route_score_and_proxy_url(self):
        route = Route(name="brightdata", route_type=RouteType.RESIDENTIAL, endpoint="brd.example:22225",
                      username="cust", password="pw", reliability=0.95, cost_per_gb=15.0,
                      supports_session_rotation=True, session_id="abc")
        self.assertAlmostEqual(route.score, 0.74)
        self.assertEqual(route.proxy_url(), "http://cust-session-abc:pw@brd.example:22225")
        self.assertIsNone(Route(name="direct", route_type=RouteType.DIRECT).proxies())


class TestProductStateStore(unittest.TestCase):
    """Test monotonic status writes"""

    def setUp(self):
        self.store = ProductStateStore()
        self.store.get_or_create("B000TEST01", "us")

    def test_country_is_normalized(self):
        self.store.update("B000TEST01", "US", status=AnalysisStatus.FETCHED)
        self.assertEqual(self.store.get("B000TEST01", "us").status, AnalysisStatus.FETCHED)

    def test_regression_is_rejected(self):
        self.store.transition("B000TEST01", "us", AnalysisStatus.ANALYZED)
        written = self.store.transition("B000TEST01", "us", AnalysisStatus.FETCHED, description="stale")

        self.assertFalse(written)
        state = self.store.get("B000TEST01", "us")
        self.assertEqual(state.status, AnalysisStatus.ANALYZED)
        self.assertEqual(state.description, "")

    def test_strict_regression_raises(self):
        self.store.transition("B000TEST01", "us", AnalysisStatus.PROCESSING)
        with self.assertRaises(StatusRegressionError):
            self.store.update("B000TEST01", "us", strict=True, status=AnalysisStatus.PENDING)

    def test_completed_record_is_immutable(self):
        self.store.transition("B000TEST01", "us", AnalysisStatus.COMPLETED, grade="B")

        self.assertFalse(self.store.update("B000TEST01", "us", grade="F"))
        self.assertFalse(self.store.transition("B000TEST01", "us", AnalysisStatus.FAILED))
        self.assertFalse(self.store.save(ProductAnalysisState(product_id="B000TEST01")))
        self.assertEqual(self.store.get("B000TEST01", "us").grade, "B")

    def test_force_reanalysis_reopens_completed(self):
        self.store.transition("B000TEST01", "us", AnalysisStatus.COMPLETED, grade="B")
        self.store.force_reanalysis("B000TEST01", "us")

        self.assertEqual(self.store.get("B000TEST01", "us").status, AnalysisStatus.PENDING_ANALYSIS)
        self.assertTrue(self.store.transition("B000TEST01", "us", AnalysisStatus.PROCESSING))

    def test_returned_records_are_copies(self):
        state = self.store.get("B000TEST01", "us")
        state.reviews.append(ReviewRecord(id="R1", rating=5, text="x"))
        self.assertEqual(self.store.get("B000TEST01", "us").reviews, [])

    def test_unknown_field_raises(self):
        with self.assertRaises(AttributeError):
            self.store.update("B000TEST01", "us", not_a_field=1)


if __name__ == '__main__':
    unittest.main()
