from enum import Enum

from cloudpubsub.errors import IllegalArgumentError


class IdentityType(Enum):
    """An enumerated type of IAM members"""

    ALL_USERS = 'allUsers'
    ALL_AUTHENTICATED_USERS = 'allAuthenticatedUsers'
    USER = 'user'
    SERVICE_ACCOUNT = 'serviceAccount'
    GROUP = 'group'
    DOMAIN = 'domain'
    PROJECT_OWNER = 'projectOwner'
    PROJECT_EDITOR = 'projectEditor'
    PROJECT_VIEWER = 'projectViewer'
    # value keeps the kind and uid of the removed member, e.g. 'user:a@b.com?uid=1'
    DELETED = 'deleted'


_VALUELESS_TYPES = (IdentityType.ALL_USERS, IdentityType.ALL_AUTHENTICATED_USERS)


class Identity(object):
    """A member of an IAM policy binding.

    Arguments:
        identity_type (IdentityType): the kind of member
        value (str): email address or domain. Must be None for ALL_USERS and
            ALL_AUTHENTICATED_USERS.
    """

    def __init__(self, identity_type, value=None):
        if not isinstance(identity_type, IdentityType):
            raise IllegalArgumentError("identity_type must be of type IdentityType")
        if identity_type in _VALUELESS_TYPES:
            if value is not None:
                raise IllegalArgumentError("%s identities do not take a value" % identity_type.value)
        elif not value:
            raise IllegalArgumentError("%s identities require a value" % identity_type.value)
        self.type = identity_type
        self.value = value

    @classmethod
    def all_users(cls):
        return cls(IdentityType.ALL_USERS)

    @classmethod
    def all_authenticated_users(cls):
        return cls(IdentityType.ALL_AUTHENTICATED_USERS)

    @classmethod
    def user(cls, email):
        return cls(IdentityType.USER, email)

    @classmethod
    def service_account(cls, email):
        return cls(IdentityType.SERVICE_ACCOUNT, email)

    @classmethod
    def group(cls, email):
        return cls(IdentityType.GROUP, email)

    @classmethod
    def domain(cls, domain):
        return cls(IdentityType.DOMAIN, domain)

    @classmethod
    def project_owner(cls, project_id):
        return cls(IdentityType.PROJECT_OWNER, project_id)

    @classmethod
    def project_editor(cls, project_id):
        return cls(IdentityType.PROJECT_EDITOR, project_id)

    @classmethod
    def project_viewer(cls, project_id):
        return cls(IdentityType.PROJECT_VIEWER, project_id)

    @classmethod
    def from_str(cls, member):
        """Parse a policy member such as 'user:jane@example.com'"""
        type_str, _, value = member.partition(':')
        try:
            identity_type = IdentityType(type_str)
        except ValueError:
            raise IllegalArgumentError('Unrecognized identity type: %s' % member)
        return cls(identity_type, value or None)

    def __str__(self):
        if self.type in _VALUELESS_TYPES:
            return self.type.value
        return '{0}:{1}'.format(self.type.value, self.value)

    def __repr__(self):
        return '<Identity %s>' % self

    def __eq__(self, other):
        if not isinstance(other, Identity):
            return NotImplemented
        return self.type == other.type and self.value == other.value

    def __hash__(self):
        return hash((self.type, self.value))


class Role(object):
    """An IAM role, e.g. 'roles/pubsub.subscriber'"""
    PREFIX = 'roles/'

    def __init__(self, value):
        if not value:
            raise IllegalArgumentError("role must be a non-empty string")
        self.value = value

    @classmethod
    def of(cls, name):
        if name.startswith(cls.PREFIX):
            return cls(name)
        return cls(cls.PREFIX + name)

    @classmethod
    def viewer(cls):
        return cls.of('viewer')

    @classmethod
    def editor(cls):
        return cls.of('editor')

    @classmethod
    def owner(cls):
        return cls.of('owner')

    def __str__(self):
        return self.value

    def __repr__(self):
        return '<Role %s>' % self.value

    def __eq__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.value == other.value

    def __hash__(self):
        return hash(self.value)


class Policy(object):
    """An immutable IAM access control policy.

    Policies are replaced with read-modify-write: read the current policy,
    derive a new one with add_identity() / remove_identity(), and write it
    back. The etag read along with the policy makes the write conditional:
    the service rejects it with ConflictError when the policy changed in the
    meantime. A policy without etag overwrites unconditionally.

    Arguments:
        bindings ({Role: iterable of Identity}, optional): role bindings
        etag (str, optional): concurrency token returned by the service
        version (int, optional): policy format version
    """

    def __init__(self, bindings=None, etag=None, version=None):
        self._bindings = {}
        for role, identities in (bindings or {}).items():
            if not isinstance(role, Role):
                raise IllegalArgumentError("binding keys must be of type Role")
            identities = frozenset(identities)
            if not all(isinstance(identity, Identity) for identity in identities):
                raise IllegalArgumentError("binding members must be of type Identity")
            if identities:
                self._bindings[role] = identities
        self.etag = etag
        self.version = version

    @property
    def bindings(self):
        return dict(self._bindings)

    def identities(self, role):
        return self._bindings.get(role, frozenset())

    def add_identity(self, role, *identities):
        bindings = self.bindings
        bindings[role] = bindings.get(role, frozenset()).union(identities)
        return Policy(bindings, self.etag, self.version)

    def remove_identity(self, role, *identities):
        bindings = self.bindings
        if role in bindings:
            bindings[role] = bindings[role].difference(identities)
        return Policy(bindings, self.etag, self.version)

    def with_etag(self, etag):
        return Policy(self._bindings, etag, self.version)

    def to_pb(self):
        policy_pb = {
            'bindings': [
                {'role': role.value,
                 'members': sorted(str(identity) for identity in identities)}
                for role, identities in sorted(self._bindings.items(),
                                               key=lambda item: item[0].value)
            ],
        }
        if self.etag is not None:
            policy_pb['etag'] = self.etag
        if self.version is not None:
            policy_pb['version'] = self.version
        return policy_pb

    @classmethod
    def from_pb(cls, policy_pb):
        bindings = {}
        for binding in policy_pb.get('bindings', []):
            role = Role(binding['role'])
            members = set(Identity.from_str(m) for m in binding.get('members', []))
            bindings[role] = bindings.get(role, frozenset()).union(members)
        return cls(bindings, policy_pb.get('etag'), policy_pb.get('version'))

    def __eq__(self, other):
        if not isinstance(other, Policy):
            return NotImplemented
        return (self._bindings == other._bindings
                and self.etag == other.etag
                and self.version == other.version)

    def __hash__(self):
        return hash((frozenset(self._bindings.items()), self.etag, self.version))

    def __repr__(self):
        return 'Policy(bindings=%r, etag=%r, version=%r)' % (
            self._bindings, self.etag, self.version)
