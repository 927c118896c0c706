import unittest
from collections import Counter

import numpy as np

from tor_geopath.circuit import (
    Circuit, InvalidArgument, NoSuitableCandidates, PathAlgorithm, PathSelector,
    compute_min_bandwidth, weighted_choice,
)
from tor_geopath.network import RelayRecord, RelayRole, RelayStore, same_address_group


def relay(fingerprint, address, bandwidth=10, flags=("Fast",), country=None, **kwargs):
    return RelayRecord(fingerprint=fingerprint, nickname=fingerprint, address=address,
                       bandwidth=bandwidth, flags=flags, country_code=country, **kwargs)


def five_relay_store():
    return RelayStore([
        relay("guard_only", "10.1.0.1", 10, flags=("Guard",)),
        relay("fast_guard_1", "10.2.0.1", 20, flags=("Fast", "Guard")),
        relay("fast_guard_2", "10.3.0.1", 30, flags=("Fast", "Guard")),
        relay("fast_1", "10.4.0.1", 40, flags=("Fast",)),
        relay("fast_2", "10.5.0.1", 50, flags=("Fast",)),
    ])


class TestWeightedChoice(unittest.TestCase):
    def setUp(self):
        self.rng = np.random.default_rng(42)

    def test_proportional_to_weight(self):
        candidates = ["a", "b", "c", "d"]
        weights = [10, 20, 30, 40]
        draws = 100000
        counts = Counter(weighted_choice(candidates, weights, self.rng) for _ in range(draws))
        for candidate, weight in zip(candidates, weights):
            self.assertAlmostEqual(counts[candidate] / draws, weight / 100, delta=0.01)

    def test_zero_weights_fall_back_to_uniform(self):
        candidates = ["a", "b", "c", "d"]
        draws = 40000
        counts = Counter(weighted_choice(candidates, [0, 0, 0, 0], self.rng) for _ in range(draws))
        for candidate in candidates:
            self.assertAlmostEqual(counts[candidate] / draws, 0.25, delta=0.01)

    def test_negative_weights_count_as_zero(self):
        for _ in range(200):
            self.assertEqual(weighted_choice(["a", "b", "c"], [-5, 0, 3], self.rng), "c")

    def test_all_negative_weights_fall_back_to_uniform(self):
        seen = {weighted_choice(["a", "b"], [-1, -2], self.rng) for _ in range(200)}
        self.assertEqual(seen, {"a", "b"})

    def test_empty_pool(self):
        with self.assertRaises(InvalidArgument) as ctx:
            weighted_choice([], [], self.rng)
        self.assertEqual(ctx.exception.argument, "candidates")

    def test_length_mismatch(self):
        with self.assertRaises(InvalidArgument) as ctx:
            weighted_choice(["a", "b"], [1.0], self.rng)
        self.assertEqual(ctx.exception.argument, "weights")
        self.assertIsInstance(ctx.exception, ValueError)


class TestCircuit(unittest.TestCase):
    def test_min_bandwidth_derived(self):
        hops = [relay("g", "1.1.1.1", 30), relay("m", "2.2.2.2", 5), relay("e", "3.3.3.3", 70)]
        circuit = Circuit.from_hops(7, *hops)
        self.assertEqual(circuit.min_bandwidth, 5)
        self.assertEqual(circuit.compute_min_bandwidth(), circuit.min_bandwidth)
        self.assertEqual(circuit.fingerprints, ["g", "m", "e"])
        self.assertEqual(circuit.guard.fingerprint, "g")
        self.assertEqual(circuit.exit.fingerprint, "e")

    def test_empty_relays(self):
        self.assertEqual(compute_min_bandwidth([]), 0)
        self.assertEqual(Circuit(1, ()).min_bandwidth, 0)

    def test_min_bandwidth_cannot_be_overridden(self):
        hops = (relay("g", "1.1.1.1", 10), relay("m", "2.2.2.2", 20), relay("e", "3.3.3.3", 30))
        with self.assertRaises(TypeError):
            Circuit(1, hops, 999)
        with self.assertRaises(TypeError):
            Circuit(1, hops, min_bandwidth=999)
        self.assertEqual(Circuit(1, hops).min_bandwidth, Circuit(1, hops).compute_min_bandwidth())

    def test_hops_are_role_tagged(self):
        hops = [relay("g", "1.1.1.1"), relay("m", "2.2.2.2"), relay("e", "3.3.3.3")]
        circuit = Circuit.from_hops(1, *hops)
        self.assertEqual([role for role, _ in circuit.hops()],
                         [RelayRole.GUARD, RelayRole.MIDDLE, RelayRole.EXIT])


class TestBaselineSelection(unittest.TestCase):
    def test_five_relay_scenario(self):
        store = five_relay_store()
        selector = PathSelector(store, seed=3)
        for circuit_id in range(1, 200):
            circuit = selector.select_baseline(circuit_id)
            self.assertEqual(circuit.circuit_id, circuit_id)
            self.assertTrue(circuit.exit.is_fast)
            self.assertTrue(circuit.guard.is_guard)
            self.assertTrue(circuit.middle.is_fast)
            self.assertEqual(len(set(circuit.fingerprints)), 3)
            self.assertNotEqual(circuit.exit.fingerprint, "guard_only")

    def test_no_guard_relays(self):
        store = RelayStore([relay("a", "10.1.0.1"), relay("b", "10.2.0.1"),
                            relay("c", "10.3.0.1")])
        with self.assertRaises(NoSuitableCandidates) as ctx:
            PathSelector(store, seed=1).select_baseline(1)
        self.assertEqual(ctx.exception.role, RelayRole.GUARD)

    def test_no_exit_relays(self):
        store = RelayStore([relay("a", "10.1.0.1", flags=("Fast", "Guard"),
                                  exit_policy="reject *:*")])
        with self.assertRaises(NoSuitableCandidates) as ctx:
            PathSelector(store, seed=1).select_baseline(1)
        self.assertEqual(ctx.exception.role, RelayRole.EXIT)

    def test_no_middle_relays(self):
        # Only two relays: whichever is exit, the other is guard, nothing left.
        store = RelayStore([relay("a", "10.1.0.1", flags=("Fast", "Guard")),
                            relay("b", "10.2.0.1", flags=("Fast", "Guard"))])
        with self.assertRaises(NoSuitableCandidates) as ctx:
            PathSelector(store, seed=1).select_baseline(1)
        self.assertEqual(ctx.exception.role, RelayRole.MIDDLE)

    def test_guard_excluded_from_exit_group(self):
        store = RelayStore([
            relay("exit", "10.1.0.1", 100, exit_policy="accept 80,443"),
            relay("near_guard", "10.1.9.9", 1000, flags=("Guard",)),
            relay("far_guard", "10.2.0.1", 1, flags=("Guard",)),
            relay("middle", "10.3.0.1", 10, exit_policy="reject *:*"),
        ])
        selector = PathSelector(store, seed=5)
        for i in range(50):
            circuit = selector.select_baseline(i)
            self.assertEqual(circuit.exit.fingerprint, "exit")
            self.assertEqual(circuit.guard.fingerprint, "far_guard")
            self.assertEqual(circuit.middle.fingerprint, "middle")

    def test_unparseable_addresses_still_give_distinct_hops(self):
        store = RelayStore([relay("a", "::1", flags=("Fast", "Guard")),
                            relay("b", "::2", flags=("Fast", "Guard")),
                            relay("c", "::3", flags=("Fast",))])
        selector = PathSelector(store, seed=11)
        for i in range(100):
            self.assertEqual(len(set(selector.select_baseline(i).fingerprints)), 3)

    def test_invariants_on_synthetic_population(self):
        store = RelayStore.generate_synthetic(num_guards=30, num_middles=100, num_exits=30, seed=9)
        selector = PathSelector(store, seed=9)
        for algorithm in PathAlgorithm:
            for i in range(300):
                circuit = selector.select(i, algorithm, 0.5, 0.2)
                hops = circuit.relays
                self.assertEqual(len({r.fingerprint for r in hops}), 3)
                for x in range(3):
                    for y in range(x + 1, 3):
                        self.assertFalse(same_address_group(hops[x], hops[y]))
                self.assertEqual(circuit.min_bandwidth, min(r.bandwidth for r in hops))

    def test_seeded_selection_is_reproducible(self):
        store = RelayStore.generate_synthetic(num_guards=20, num_middles=50, num_exits=20, seed=2)
        first = [PathSelector(store, seed=4).select_baseline(1).fingerprints for _ in range(3)]
        self.assertEqual(first[0], first[1])
        self.assertEqual(first[1], first[2])

    def test_injected_generator(self):
        store = five_relay_store()
        a = PathSelector(store, rng=np.random.default_rng(123))
        b = PathSelector(store, rng=np.random.default_rng(123))
        self.assertEqual([a.select_baseline(i).fingerprints for i in range(20)],
                         [b.select_baseline(i).fingerprints for i in range(20)])


class TestGeoAwareSelection(unittest.TestCase):
    def test_guard_weights(self):
        exit_relay = relay("e", "1.1.0.1", country="US")
        guards = [relay("same", "2.2.0.1", 100, country="US"),
                  relay("other", "3.3.0.1", 100, country="DE"),
                  relay("unknown", "4.4.0.1", 100),
                  relay("empty", "5.5.0.1", 0, country="FR")]
        weights = PathSelector.guard_weights(guards, exit_relay, 0.5)
        self.assertEqual(weights, [100.0, 150.0, 100.0, 0.0])

    def test_middle_weights(self):
        guard = relay("g", "1.1.0.1", country="US")
        exit_relay = relay("e", "2.2.0.1", country="DE")
        middles = [relay("us", "3.3.0.1", 10, country="US"),
                   relay("de", "4.4.0.1", 10, country="DE"),
                   relay("fr", "5.5.0.1", 10, country="FR"),
                   relay("unknown", "6.6.0.1", 10),
                   relay("zero", "7.7.0.1", 0, country="FR")]
        weights = PathSelector.middle_weights(middles, guard, exit_relay, 0.5)
        self.assertEqual(weights, [20.0, 20.0, 25.0, 25.0, 0.0])

    def test_middle_weight_when_guard_and_exit_share_country(self):
        guard = relay("g", "1.1.0.1", country="US")
        exit_relay = relay("e", "2.2.0.1", country="US")
        weights = PathSelector.middle_weights([relay("m", "3.3.0.1", 10, country="US")],
                                              guard, exit_relay, 1.0)
        self.assertEqual(weights, [20.0])

    def test_alpha_raises_foreign_guard_probability(self):
        exit_relay = relay("e", "1.1.0.1", country="US")
        guards = [relay("same", "2.2.0.1", 100, country="US"),
                  relay("other", "3.3.0.1", 100, country="DE")]

        def foreign_share(alpha):
            weights = PathSelector.guard_weights(guards, exit_relay, alpha)
            return weights[1] / sum(weights)

        self.assertGreater(foreign_share(1.0), foreign_share(0.0))
        self.assertAlmostEqual(foreign_share(0.0), 0.5)
        self.assertAlmostEqual(foreign_share(1.0), 2 / 3)

    def test_alpha_and_beta_are_clamped(self):
        store = RelayStore([
            relay("exit", "10.1.0.1", 10, country="US"),
            relay("g_us", "10.2.0.1", 10, flags=("Guard",), country="US"),
            relay("g_de", "10.3.0.1", 10, flags=("Guard",), country="DE"),
            relay("m", "10.4.0.1", 10, exit_policy="reject *:*", country="FR"),
        ])
        draws = 20000
        clamped = PathSelector(store, seed=8)
        reference = PathSelector(store, seed=8)
        a = [clamped.select_geo_aware(i, 5.0, -3.0).guard.fingerprint for i in range(draws)]
        b = [reference.select_geo_aware(i, 1.0, 0.0).guard.fingerprint for i in range(draws)]
        self.assertEqual(a, b)
        self.assertAlmostEqual(a.count("g_de") / draws, 2 / 3, delta=0.02)

    def test_geo_aware_failures_name_the_role(self):
        store = RelayStore([relay("a", "10.1.0.1"), relay("b", "10.2.0.1")])
        with self.assertRaises(NoSuitableCandidates) as ctx:
            PathSelector(store, seed=1).select_geo_aware(1, 0.5, 0.5)
        self.assertEqual(ctx.exception.role, RelayRole.GUARD)


if __name__ == '__main__':
    unittest.main()
