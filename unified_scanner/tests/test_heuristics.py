from unified_scanner.heuristics import (
    DEFAULT_HEURISTICS,
    is_cli_path_operation,
    is_documentation_example,
    is_lockfile_integrity_hash,
    is_public_api_key,
    is_scanner_rule_definition,
)
from unified_scanner.models import Category
from unified_scanner.suppression import ContextWindow


def _window(text, start_line=1):
    return ContextWindow(start_line=start_line, lines=tuple(text.split("\n")))


def test_cli_path_operation(make_finding):
    validated = make_finding(file="src/cli/run.ts", snippet="const p = path.resolve(base, arg)")
    traversal = make_finding(
        file="src/commands/init.ts", rule_id="path-traversal-join", snippet="path.join(root, name)"
    )
    app_code = make_finding(file="src/server/upload.ts", snippet="path.join(root, name)")

    assert is_cli_path_operation(validated)
    assert is_cli_path_operation(traversal)
    assert not is_cli_path_operation(app_code)


def test_documentation_example(make_finding):
    assert is_documentation_example(make_finding(file="guide/setup.rst", snippet="token = <YOUR_TOKEN>"))
    assert is_documentation_example(make_finding(file="docs/api.ts", category=Category.SECRETS, snippet="k"))
    assert not is_documentation_example(make_finding(file="src/api.ts", snippet="token = <YOUR_TOKEN>"))


def test_scanner_rule_definition(make_finding):
    rule = make_finding(file="security/rules/secrets.yml", category=Category.SECRETS)
    hardcoded = make_finding(file="rule/auth.yaml", rule_id="hardcoded-password")
    code = make_finding(file="security/rules/secrets.ts", category=Category.SECRETS)

    assert is_scanner_rule_definition(rule)
    assert is_scanner_rule_definition(hardcoded)
    assert not is_scanner_rule_definition(code)


def test_lockfile_integrity_hash(make_finding):
    sha = make_finding(
        file="web/package-lock.json",
        category=Category.SECRETS,
        snippet='"integrity": "sha512-Zm9vYmFyYmF6cXV4+/=="',
    )
    tarball = make_finding(
        file="yarn.lock",
        category=Category.SECRETS,
        snippet='resolved "https://registry.yarnpkg.com/a/-/a-1.0.0.tgz#' + "a" * 40 + '"',
    )
    not_lockfile = make_finding(file="src/my-yarn.lock.ts", category=Category.SECRETS, snippet='"' + "b" * 40 + '"')
    not_secret = make_finding(file="yarn.lock", category=Category.DEPENDENCY, snippet='"' + "c" * 40 + '"')

    assert is_lockfile_integrity_hash(sha)
    assert is_lockfile_integrity_hash(tarball)
    assert not is_lockfile_integrity_hash(not_lockfile)
    assert not is_lockfile_integrity_hash(not_secret)


def test_public_api_key_requires_context(make_finding):
    finding = make_finding(file="src/search.ts", category=Category.SECRETS, snippet="pk_" + "a" * 24)
    assert not is_public_api_key(finding, None)


def test_stripe_publishable_key_in_client_code(make_finding):
    finding = make_finding(file="src/checkout.ts", category=Category.SECRETS, snippet="pk_" + "a" * 24)
    window = _window("// browser checkout\nconst stripe = Stripe('pk_" + "a" * 24 + "')")
    assert is_public_api_key(finding, window)


def test_algolia_search_only_key(make_finding):
    finding = make_finding(file="src/search.ts", category=Category.SECRETS, snippet="apiKey")
    window = _window(
        "const client = algoliasearch({ appId: 'ABCDEFGHIJ', apiKey: '" + "0" * 32 + "' })\nindex.search(query)"
    )
    assert is_public_api_key(finding, window)


def test_google_maps_key_is_never_auto_suppressed(make_finding):
    finding = make_finding(file="src/config.ts", category=Category.SECRETS, snippet="key")
    window = _window("export const config = { googleMapsApiKey }  // google maps api key, public")
    assert not is_public_api_key(finding, window)


def test_unknown_secret_is_not_public(make_finding):
    finding = make_finding(file="src/server.ts", category=Category.SECRETS, snippet="sk_live_xyz")
    window = _window("const secret = process.env.SECRET")
    assert not is_public_api_key(finding, window)


def test_default_heuristics_have_unique_names():
    names = [h.name for h in DEFAULT_HEURISTICS]
    assert len(names) == len(set(names))
    assert all(h.reason for h in DEFAULT_HEURISTICS)
