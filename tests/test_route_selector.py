from data.models import Route, RouteType
from ingestion.route_selector import RouteSelector, parse_custom_proxies


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def provider(name, reliability, cost, rotation=True):
    return Route(name=name, route_type=RouteType.RESIDENTIAL, endpoint=f"{name}.example:8000",
                 username='user', password='pw', reliability=reliability, cost_per_gb=cost,
                 supports_session_rotation=rotation)


def test_parse_custom_proxies_skips_malformed_entries():
    routes = parse_custom_proxies("10.0.0.1:8080:u:p:us, bad-entry ,10.0.0.2:8081:u2:p2")
    assert [r.endpoint for r in routes] == ["10.0.0.1:8080", "10.0.0.2:8081"]
    assert routes[0].country == "us"
    assert routes[0].proxy_url() == "http://u:p@10.0.0.1:8080"


def test_direct_route_when_nothing_configured():
    route = RouteSelector().select()
    assert route.is_direct
    assert route.proxies() is None


def test_best_scoring_provider_gets_a_session_id():
    selector = RouteSelector(providers=[provider('cheap', 0.85, 2.0), provider('reliable', 0.95, 15.0)],
                             clock=FakeClock())
    route = selector.select()

    # 0.85*0.7 + 0.9*0.3 = 0.865 beats 0.95*0.7 + 0.25*0.3 = 0.74
    assert route.name == 'cheap'
    assert route.session_id.startswith('review_scrape_1700000000_')
    assert f"user-session-{route.session_id}" in route.proxy_url()
    assert selector.select().session_id == route.session_id


def test_failure_rotates_provider_session():
    selector = RouteSelector(providers=[provider('brightdata', 0.95, 15.0)], clock=FakeClock())
    route = selector.select()
    before = route.session_id

    selector.report_failure(route, "timeout")
    assert selector.select().session_id != before


def test_custom_routes_preferred_and_failing_route_excluded():
    clock = FakeClock()
    custom = parse_custom_proxies("10.0.0.1:8080:u:p,10.0.0.2:8080:u:p")
    selector = RouteSelector(providers=[provider('brightdata', 0.95, 15.0)], custom_routes=custom, clock=clock)

    first = selector.select()
    assert first.route_type is RouteType.CUSTOM

    for _ in range(4):
        selector.report_failure(custom[0], "connection reset")
    selector.report_success(custom[1])

    assert selector.select().name == custom[1].name
    stats = selector.stats()['custom_routes']
    assert stats[custom[0].name]['failure_count'] == 4


def test_all_custom_routes_failing_falls_back_to_provider():
    clock = FakeClock()
    custom = parse_custom_proxies("10.0.0.1:8080:u:p")
    selector = RouteSelector(providers=[provider('oxylabs', 0.92, 12.0)], custom_routes=custom, clock=clock)
    for _ in range(4):
        selector.report_failure(custom[0], "refused")

    assert selector.select().name == 'oxylabs'
