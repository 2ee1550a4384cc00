from data.models import AnalysisStatus, ProductAnalysisState
from scripts import run_pipeline


class StubService:
    def __init__(self, state):
        self.state = state
        self.calls = []
        self.shut_down = False

    def submit_for_analysis(self, product_id, country, in_background=False):
        self.calls.append((product_id, country, in_background))
        return self.state

    def shutdown(self, wait=True):
        self.shut_down = True


def model_help():
    parser = run_pipeline.build_parser()
    return next(a.help for a in parser._actions if '--model' in a.option_strings)


def test_model_help_names_the_setting_that_is_read():
    assert 'LLM_MODEL' in model_help()


def test_invalid_product_id_exits_early(monkeypatch):
    def refuse(**kwargs):
        raise AssertionError('service should not be built for an invalid id')

    monkeypatch.setattr(run_pipeline, 'build_default_service', refuse)
    assert run_pipeline.main(['--product-id', 'nope']) == 2


def test_completed_run_returns_zero_and_runs_inline(monkeypatch, tmp_path):
    state = ProductAnalysisState(product_id='B08N5WRWNW', status=AnalysisStatus.COMPLETED, grade='B',
                                 fake_percentage=12.0, amazon_rating=4.5, adjusted_rating=4.2)
    service = StubService(state)
    built = {}

    def fake_build(**kwargs):
        built.update(kwargs)
        return service

    monkeypatch.setattr(run_pipeline, 'validate_config', lambda: [])
    monkeypatch.setattr(run_pipeline, 'build_default_service', fake_build)
    output = tmp_path / 'result.json'

    code = run_pipeline.main(['--product-id', 'B08N5WRWNW', '--model', 'claude-3-5-haiku-20241022',
                              '--output', str(output)])

    assert code == 0
    assert service.calls == [('B08N5WRWNW', 'us', True)]
    assert service.shut_down
    assert built['model'] == 'claude-3-5-haiku-20241022'
    assert output.exists()
