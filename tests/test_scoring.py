"""StabilityScorer bounds, balance target and monotonicity."""

import pytest

from ecosim.scoring import StabilityScorer, clamp_score


def set_populations(state, **populations):
    for species_id, value in populations.items():
        state.populations[species_id].population = value
    return state


def test_clamp_score():
    assert clamp_score(-5) == 0
    assert clamp_score(150) == 100
    assert clamp_score(12.345678) == 12.3457


def test_balance_is_perfect_at_two_producers_per_consumer(make_model):
    state = set_populations(make_model().snapshot(), c1=75, c2=75)
    assert StabilityScorer().species_balance(state) == 100.0


def test_balance_drops_as_consumers_take_over(make_model):
    scorer = StabilityScorer()
    state = make_model().snapshot()

    scores = []
    for consumers in (75, 150, 300, 450):
        set_populations(state, c1=consumers, c2=consumers)
        scores.append(scorer.species_balance(state))

    assert scores == sorted(scores, reverse=True)
    assert scores[-1] == 0.0


def test_balance_without_producers_is_zero(make_model):
    state = set_populations(make_model().snapshot(), p1=0, p2=0, p3=0)
    assert StabilityScorer().species_balance(state) == 0.0


def test_stressed_environment_never_scores_higher(make_model, stressed_environment):
    scorer = StabilityScorer()
    optimal = make_model().state
    stressed = make_model(environment=stressed_environment).state

    assert scorer.stability_score(stressed) <= scorer.stability_score(optimal)
    assert scorer.environmental_suitability(optimal) == 1.0


def test_metrics_are_bounded(make_model, stressed_environment):
    scorer = StabilityScorer()
    for state in (make_model().state, make_model(environment=stressed_environment).state):
        metrics = scorer.evaluate(state)
        for value in metrics.model_dump().values():
            assert 0.0 <= value <= 100.0
        assert 0.0 <= scorer.final_score(metrics) <= 100.0


def test_ecosystem_stability_averages_history(make_model):
    state = make_model().snapshot()
    state.stability_history = [50.0, 70.0]

    assert StabilityScorer().ecosystem_stability(state, current=90.0) == 70.0


def test_survival_rate_counts_living_species(make_model):
    state = set_populations(make_model().snapshot(), c2=0)
    assert StabilityScorer().survival_rate(state) == pytest.approx(0.8)


def test_secondary_metrics(make_model):
    scorer = StabilityScorer()
    state = make_model().state

    # 3 producers and 2 consumers out of 5
    assert scorer.species_diversity(state) == 96.0
    # Mean of 0.6 (c1) and 0.65 (c2) predation strengths
    assert scorer.trophic_efficiency(state) == 62.5


def test_weights_are_normalised():
    scorer = StabilityScorer(balance_weight=1, suitability_weight=1, survival_weight=2)
    assert scorer.survival_weight == 0.5


@pytest.mark.parametrize("weights", [(0, 0, 0), (-1, 1, 1)])
def test_invalid_weights(weights):
    with pytest.raises(ValueError):
        StabilityScorer(*weights)
