# -*- coding: utf-8 -*-
"""
cp_core.py  (CP-ABE core)
-------------------------
Ciphertext-policy ABE over a threshold access tree, asymmetric pairing
e : G1 x G2 -> GT.

  pub = (curve, g ∈ G1, h = g^β, f = g^(1/β), gp ∈ G2, e(g, gp)^α)
  msk = (β, gp^α)

  KeyGen(S):
    D    = (gp^α · gp^r)^(1/β)                       G2
    D_j  = gp^r · H(j)^(r_j)                         G2   for j ∈ S
    D'_j = g^(r_j)                                   G1

  Encrypt(policy):
    C~   = m · e(g, gp)^(αs)                         GT   m ∈ GT random
    C    = h^s                                       G1
    each node x gets a random polynomial q_x of degree k_x - 1,
    q_root(0) = s, q_child(0) = q_parent(index(child)), indices 1..n
    leaf y: C_y = g^(q_y(0)) ∈ G1,  C'_y = H(attr(y))^(q_y(0)) ∈ G2

  Decrypt:
    leaf:  e(C_y, D_j) / e(D'_j, C'_y) = e(g, gp)^(r·q_y(0))
    gate:  Lagrange-combine k chosen children at 0 -> e(g, gp)^(r·q_x(0))
    root:  A = e(g, gp)^(rs);   m = C~ · A / e(C, D)

H maps attribute strings into G2: SHA-256 digest -> Charm hash-to-group.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from charm.toolbox.pairinggroup import PairingGroup, ZR, G1, G2, GT, pair

from cpabe.errors import InvariantViolation, KeyGenError, PolicyNotSatisfied, SetupError
from cpabe.policy import Gate, Leaf, PolicyNode, check_tree, compile_policy

logger = logging.getLogger(__name__)

DEFAULT_CURVE = "MNT224"

# Part of the public parameters in effect: changing it invalidates every issued key.
ATTRIBUTE_DIGEST = "sha256"
_ATTR_DOMAIN = b"cpabe:attr:"


# ============================================================
# Pairing group
# ============================================================

@lru_cache(maxsize=None)
def pairing_group(curve: str) -> PairingGroup:
    """One shared PairingGroup per curve name."""
    try:
        return PairingGroup(curve)
    except Exception as exc:
        raise SetupError(f"Unsupported pairing curve {curve!r}") from exc


def hash_attribute(group: PairingGroup, attr: str) -> Any:
    """H : attribute string -> G2."""
    digest = hashlib.new(ATTRIBUTE_DIGEST, _ATTR_DOMAIN + attr.encode("utf-8")).digest()
    return group.hash(digest, G2)


def _now_ms() -> int:
    return int(time.time() * 1000)


# ============================================================
# Scheme dataclasses
# ============================================================

@dataclass
class PublicParams:
    curve: str
    g: Any             # G1
    h: Any             # G1, g^β
    gp: Any            # G2
    g_hat_alpha: Any   # GT, e(g, gp^α)
    f: Any = field(default=None, compare=False, repr=False)   # G1, g^(1/β); not persisted

    @property
    def group(self) -> PairingGroup:
        return pairing_group(self.curve)


@dataclass
class MasterSecret:
    beta: Any      # ZR
    g_alpha: Any   # G2, gp^α


@dataclass
class PrivateKeyComponent:
    attr: str
    d: Any    # G2
    dp: Any   # G1


@dataclass
class PrivateKey:
    d: Any                                   # G2
    components: List[PrivateKeyComponent]
    # traceability metadata, advisory only
    user_id: str = ""
    user_email: str = ""
    timestamp: int = 0          # issuance, unix ms
    expiration_date: int = 0    # unix ms, 0 = no expiry

    @property
    def attributes(self) -> List[str]:
        return [c.attr for c in self.components]

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        if self.expiration_date <= 0:
            return False
        now = _now_ms() if now_ms is None else now_ms
        return self.expiration_date <= now


@dataclass
class Ciphertext:
    c_tilde: Any           # GT
    c: Any                 # G1
    policy: PolicyNode     # leaves carry c / cp
    encryption_date: int = 0


@dataclass(frozen=True)
class DecryptResult:
    ok: bool
    key: Any = None   # GT blinding factor when ok

    def unwrap(self) -> Any:
        if not self.ok:
            raise PolicyNotSatisfied("Key attributes do not satisfy the ciphertext policy")
        return self.key


# ============================================================
# Setup
# ============================================================

def setup(curve: str = DEFAULT_CURVE) -> Tuple[PublicParams, MasterSecret]:
    group = pairing_group(curve)

    alpha = group.random(ZR)
    beta = group.random(ZR)
    g = group.random(G1)
    gp = group.random(G2)

    g_alpha = gp ** alpha
    pub = PublicParams(
        curve=curve,
        g=g,
        h=g ** beta,
        gp=gp,
        g_hat_alpha=pair(g, g_alpha),
        f=g ** (beta ** -1),
    )
    msk = MasterSecret(beta=beta, g_alpha=g_alpha)
    logger.info("Setup complete on curve %s", curve)
    return pub, msk


# ============================================================
# KeyGen
# ============================================================

def keygen(pub: PublicParams, msk: MasterSecret, attributes: Iterable[str],
           user_id: str = "", user_email: str = "",
           valid_for_ms: Optional[int] = None) -> PrivateKey:
    """
    Issue a private key for an attribute set. Attribute order is kept
    (duplicates collapse onto their first occurrence).
    """
    group = pub.group
    attrs = list(dict.fromkeys(attributes))
    for attr in attrs:
        if not isinstance(attr, str) or not attr:
            raise KeyGenError(f"Invalid attribute name {attr!r}")

    r = group.random(ZR)
    g_r = pub.gp ** r
    d = (msk.g_alpha * g_r) ** (msk.beta ** -1)

    comps: List[PrivateKeyComponent] = []
    for attr in attrs:
        try:
            h_attr = hash_attribute(group, attr)
        except Exception as exc:
            raise KeyGenError(f"Cannot hash attribute {attr!r} into G2") from exc
        rj = group.random(ZR)
        comps.append(PrivateKeyComponent(attr=attr, d=g_r * (h_attr ** rj), dp=pub.g ** rj))

    issued = _now_ms()
    expires = issued + int(valid_for_ms) if valid_for_ms is not None else 0
    logger.info("Issued key for user=%r with %d attribute(s)", user_id, len(comps))
    return PrivateKey(d=d, components=comps, user_id=user_id, user_email=user_email,
                      timestamp=issued, expiration_date=expires)


# ============================================================
# Secret sharing (encryption side)
# ============================================================

@dataclass
class Polynomial:
    coef: List[Any]   # ZR, coef[0] is the constant term

    @property
    def deg(self) -> int:
        return len(self.coef) - 1


def rand_poly(group: PairingGroup, deg: int, zero_val: Any) -> Polynomial:
    return Polynomial([zero_val] + [group.random(ZR) for _ in range(deg)])


def eval_poly(group: PairingGroup, q: Polynomial, x: int) -> Any:
    """q(x) in ZR, Horner's rule."""
    xz = group.init(ZR, x)
    acc = q.coef[-1]
    for c in reversed(q.coef[:-1]):
        acc = acc * xz + c
    return acc


def fill_policy(pub: PublicParams, node: PolicyNode, secret: Any) -> PolicyNode:
    """
    Share `secret` down the tree (pre-order) and return a new tree whose
    leaves carry their ciphertext components. Child i (1-based) receives q(i).
    """
    group = pub.group
    q = rand_poly(group, node.k - 1, secret)
    if isinstance(node, Leaf):
        share = q.coef[0]
        return Leaf(node.attr, c=pub.g ** share, cp=hash_attribute(group, node.attr) ** share)
    children = tuple(
        fill_policy(pub, child, eval_poly(group, q, i))
        for i, child in enumerate(node.children, start=1)
    )
    return Gate(node.k, children)


# ============================================================
# Encrypt
# ============================================================

def encrypt(pub: PublicParams, policy: Union[str, PolicyNode]) -> Tuple[Ciphertext, Any]:
    """
    Encrypt a fresh random GT element under `policy`.

    Returns (ciphertext, blinding_factor); the blinding factor is the content
    key material for the hybrid envelope. Policy errors surface before any
    group operation runs.
    """
    if isinstance(policy, str):
        tree = compile_policy(policy)
    else:
        check_tree(policy)
        tree = policy.shape()

    group = pub.group
    s = group.random(ZR)
    m = group.random(GT)

    ct = Ciphertext(
        c_tilde=(pub.g_hat_alpha ** s) * m,
        c=pub.h ** s,
        policy=fill_policy(pub, tree, s),
        encryption_date=_now_ms(),
    )
    return ct, m


# ============================================================
# Satisfaction, minimum-leaf selection, reconstruction
# ============================================================

@dataclass
class _Plan:
    """Per-decryption scratch mirroring one policy node."""
    node: PolicyNode
    children: List["_Plan"]
    satisfiable: bool = False
    min_leaves: int = 0
    comp_index: Optional[int] = None               # leaves: matched key component
    chosen: List[int] = field(default_factory=list)  # gates: 1-based child indices


def check_satisfy(node: PolicyNode, attr_index: Dict[str, int]) -> _Plan:
    if isinstance(node, Leaf):
        idx = attr_index.get(node.attr)
        return _Plan(node, [], satisfiable=idx is not None, comp_index=idx)
    kids = [check_satisfy(child, attr_index) for child in node.children]
    return _Plan(node, kids, satisfiable=sum(kid.satisfiable for kid in kids) >= node.k)


def pick_satisfy_min_leaves(plan: _Plan) -> None:
    """
    For a satisfiable node choose the k satisfiable children with the fewest
    leaves below them. sorted() is stable, so ties keep child order.
    """
    if isinstance(plan.node, Leaf):
        plan.min_leaves = 1
        return

    for child in plan.children:
        if child.satisfiable:
            pick_satisfy_min_leaves(child)

    ranked = sorted(
        (i for i, child in enumerate(plan.children) if child.satisfiable),
        key=lambda i: plan.children[i].min_leaves,
    )
    chosen = ranked[:plan.node.k]
    if len(chosen) != plan.node.k:
        raise InvariantViolation(
            f"threshold {plan.node.k} gate marked satisfiable with {len(chosen)} satisfiable children"
        )
    plan.chosen = [i + 1 for i in chosen]
    plan.min_leaves = sum(plan.children[i].min_leaves for i in chosen)


def lagrange_coefficient(group: PairingGroup, i: int, indices: Sequence[int]) -> Any:
    """Δ_{i,S}(0) = Π_{j ∈ S, j != i} (0 - j) / (i - j), in ZR."""
    iz = group.init(ZR, i)
    x0 = group.init(ZR, 0)
    num = group.init(ZR, 1)
    den = group.init(ZR, 1)
    for j in indices:
        if j == i:
            continue
        jz = group.init(ZR, j)
        num *= (x0 - jz)
        den *= (iz - jz)
    return num / den


def _dec_node_flatten(group: PairingGroup, acc: Any, exp: Any, plan: _Plan,
                      key: PrivateKey) -> Any:
    node = plan.node
    if isinstance(node, Leaf):
        if plan.comp_index is None:
            raise InvariantViolation(f"leaf {node.attr!r} chosen without a matching key component")
        comp = key.components[plan.comp_index]
        # pair() takes (G1, G2): c, dp live in G1 and d, cp in G2
        term = pair(node.c, comp.d) / pair(comp.dp, node.cp)
        return acc * (term ** exp)

    if len(plan.chosen) != node.k:
        raise InvariantViolation(
            f"gate with threshold {node.k} has {len(plan.chosen)} chosen children"
        )
    for i in plan.chosen:
        delta = lagrange_coefficient(group, i, plan.chosen)
        acc = _dec_node_flatten(group, acc, exp * delta, plan.children[i - 1], key)
    return acc


def dec_flatten(group: PairingGroup, plan: _Plan, key: PrivateKey) -> Any:
    """e(g, gp)^(r·s) from the chosen leaves, Lagrange exponents folded in."""
    return _dec_node_flatten(group, group.init(GT, 1), group.init(ZR, 1), plan, key)


def _chosen_leaves(plan: _Plan) -> List[Leaf]:
    if isinstance(plan.node, Leaf):
        return [plan.node]
    out: List[Leaf] = []
    for i in plan.chosen:
        out.extend(_chosen_leaves(plan.children[i - 1]))
    return out


def _attribute_index(attributes: Iterable[str]) -> Dict[str, int]:
    index: Dict[str, int] = {}
    for i, attr in enumerate(attributes):
        index.setdefault(attr, i)
    return index


def satisfying_leaves(policy: PolicyNode, attributes: Sequence[str]) -> Optional[List[str]]:
    """
    Attributes of the minimum-leaf satisfying assignment decryption would use,
    in reconstruction order, or None when `attributes` do not satisfy `policy`.
    """
    plan = check_satisfy(policy, _attribute_index(attributes))
    if not plan.satisfiable:
        return None
    pick_satisfy_min_leaves(plan)
    return [leaf.attr for leaf in _chosen_leaves(plan)]


# ============================================================
# Decrypt
# ============================================================

def decrypt(pub: PublicParams, key: PrivateKey, ct: Ciphertext) -> DecryptResult:
    """
    Recover the blinding factor, or DecryptResult(ok=False) when the key's
    attributes do not satisfy the policy (no pairing is computed then).
    """
    plan = check_satisfy(ct.policy, _attribute_index(key.attributes))
    if not plan.satisfiable:
        logger.info("Decrypt: attributes do not satisfy policy (user=%r)", key.user_id)
        return DecryptResult(ok=False)

    pick_satisfy_min_leaves(plan)
    logger.debug("Decrypt: using %d leaf pairing pair(s)", plan.min_leaves)

    group = pub.group
    a = dec_flatten(group, plan, key)
    return DecryptResult(ok=True, key=ct.c_tilde * a / pair(ct.c, key.d))
