import os
import tempfile
import unittest

from click.testing import CliRunner

from tor_geopath.cli import cli
from tor_geopath.network import RelayStore


class TestCli(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.tmp = tempfile.TemporaryDirectory()
        self.network = os.path.join(self.tmp.name, "relays.json")

    def tearDown(self):
        self.tmp.cleanup()

    def generate(self):
        result = self.runner.invoke(cli, [
            'generate-network', '--guards', '10', '--middles', '30', '--exits', '10',
            '--countries', 'us,de,fr', '--seed', '1', '--output', self.network,
        ])
        self.assertEqual(result.exit_code, 0, result.output)
        return result

    def test_generate_network(self):
        result = self.generate()
        self.assertIn("Relays saved to", result.output)
        store = RelayStore.from_json(self.network)
        self.assertEqual(len(store), 50)
        self.assertEqual(set(store.country_distribution()), {"US", "DE", "FR"})

    def test_select(self):
        self.generate()
        result = self.runner.invoke(cli, ['select', '--network', self.network, '--seed', '3'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("(baseline)", result.output)
        self.assertIn("(geo-aware)", result.output)
        self.assertIn("Circuit min bandwidth", result.output)

    def test_experiment(self):
        self.generate()
        result = self.runner.invoke(cli, ['experiment', '--network', self.network,
                                          '--circuits', '15', '--seed', '3'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Shannon entropy of country selection (baseline)", result.output)
        self.assertIn("Shannon entropy of country selection (geo)", result.output)

    def test_sweep(self):
        self.generate()
        result = self.runner.invoke(cli, ['sweep', '--network', self.network, '--circuits', '5',
                                          '--steps', '3', '--betas', '0.0,1.0', '--seed', '3'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("entropy_all", result.output)

    def test_requires_a_relay_source(self):
        result = self.runner.invoke(cli, ['experiment'])
        self.assertNotEqual(result.exit_code, 0)

    def test_selection_error_exits_nonzero(self):
        store = RelayStore.generate_synthetic(num_guards=0, num_middles=5, num_exits=5, seed=1)
        store.to_json(self.network)
        result = self.runner.invoke(cli, ['experiment', '--network', self.network])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No suitable guard relays", result.output)


if __name__ == '__main__':
    unittest.main()
